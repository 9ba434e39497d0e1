"""Integration tests for the print fulfillment bridge against a mocked provider API."""

import json

import pytest

from bookpress.compiler.controller import CompileRequest
from bookpress.errors import InvalidTransitionError, JobNotCompleteError, JobNotFoundError, OrderNotFoundError
from bookpress.fulfillment.bridge import CostRequest, OrderRequest, tracking_details
from bookpress.models.book import CoverType
from bookpress.models.order import CoverDesign, OrderStatus, ShippingAddress

FAMILY = "fam-1"
ADDRESS = dict(name="Ana Park", street1="1 Main St", city="Springfield", state="IL",
               postal_code="62701", country="US", phone="555-0100")


@pytest.fixture
async def complete_job(services, page_factory):
    for pid in ("p1", "p2", "p3"):
        services.pages.add(page_factory(pid, [dict(id="photo", x=100, y=100, width=200, height=200)]))
    outcome = await services.controller.submit(CompileRequest(
        family_id=FAMILY, book_size="small-square", page_ids=["p1", "p2", "p3"], family_name="The Parks",
    ))
    await services.controller.join(outcome.job.id)
    return await services.controller.get_job(FAMILY, outcome.job.id)


def _order(job_id, **kw):
    return OrderRequest(
        family_id=FAMILY,
        compilation_job_id=job_id,
        shipping_address=ShippingAddress(**ADDRESS),
        cover_design=CoverDesign(family_name="The Parks", book_title="2026"),
        requested_by="user-1",
        **kw,
    )


def _json(request):
    return json.loads(request.content)


@pytest.mark.asyncio
class TestCost:
    async def test_provider_quote(self, services, fake_lulu):
        cost = await services.bridge.estimate_cost(CostRequest(
            family_id=FAMILY, book_size="small-square", page_count=24, shipping_address=ShippingAddress(**ADDRESS),
        ))
        assert cost.is_estimate is False
        assert cost.printing_cost == pytest.approx(18.40)
        assert cost.total_cost_incl_tax == pytest.approx(26.34)

        token_req, cost_req = fake_lulu.requests
        assert token_req.url.path.endswith("/openid-connect/token")
        assert cost_req.headers["Authorization"] == "Bearer lulu-token"
        body = _json(cost_req)
        assert body["line_items"][0]["pod_package_id"] == "0850X0850FCSTDPB080UW444"
        assert body["shipping_address"]["country_code"] == "US"

    async def test_token_reused(self, services, fake_lulu):
        req = CostRequest(family_id=FAMILY, book_size="portrait", page_count=24,
                          shipping_address=ShippingAddress(**ADDRESS))
        await services.bridge.estimate_cost(req)
        await services.bridge.estimate_cost(req)
        assert sum(1 for p in fake_lulu.paths() if p.endswith("/token")) == 1

    async def test_falls_back_to_flagged_estimate(self, services, fake_lulu):
        fake_lulu.fail_cost = True
        cost = await services.bridge.estimate_cost(CostRequest(
            family_id=FAMILY, book_size="small-square", page_count=20, shipping_address=ShippingAddress(**ADDRESS),
        ))
        assert cost.is_estimate is True
        assert cost.total_cost_incl_tax == pytest.approx(20.89)
        # one retry on 5xx before giving up
        assert fake_lulu.paths().count("POST /print-job-cost-calculations/") == 2

    @pytest.mark.parametrize("body", [
        ["not", "an", "object"],
        {"line_item_costs": ["18.40"], "total_cost_incl_tax": "26.34"},
    ])
    async def test_malformed_quote_falls_back(self, services, fake_lulu, body):
        fake_lulu.cost_body = body
        cost = await services.bridge.estimate_cost(CostRequest(
            family_id=FAMILY, book_size="small-square", page_count=20, shipping_address=ShippingAddress(**ADDRESS),
        ))
        assert cost.is_estimate is True
        assert cost.total_cost_incl_tax == pytest.approx(20.89)


@pytest.mark.asyncio
class TestPlaceOrder:
    async def test_submitted(self, services, fake_lulu, complete_job):
        order = await services.bridge.place_order(_order(complete_job.id))
        assert order.status == OrderStatus.SUBMITTED
        assert order.provider_job_id == "9001"
        assert order.page_count == 4
        assert order.interior_key == complete_job.storage_key
        assert await services.store.exists(order.cover_key)
        assert [e.status for e in order.status_history] == ["pending", "submitted"]
        assert order.submitted_at is not None

        body = _json(fake_lulu.requests[-1])
        item = body["line_items"][0]
        assert item["page_count"] == 4
        assert item["printable_normalization"]["interior"]["source_url"].startswith(
            f"memory://bookpress-local/{complete_job.storage_key}?ttl=86400",
        )
        assert "/covers/" in item["printable_normalization"]["cover"]["source_url"]
        assert body["production_delay"] == 120
        assert body["contact_email"] == "books@example.com"
        assert body["external_id"] == f"bp-{FAMILY}-{complete_job.id}-{order.id}"
        assert body["shipping_address"]["name"] == "Ana Park"

        stored = await services.bridge.get_order(FAMILY, order.id)
        assert stored.status == OrderStatus.SUBMITTED

    async def test_hardcover_package(self, services, fake_lulu, complete_job):
        await services.bridge.place_order(_order(complete_job.id, cover_type=CoverType.HARD))
        body = _json(fake_lulu.requests[-1])
        assert "STDHC" in body["line_items"][0]["pod_package_id"]

    async def test_provider_rejection_fails_order(self, services, fake_lulu, complete_job):
        fake_lulu.fail_create = True
        order = await services.bridge.place_order(_order(complete_job.id))
        assert order.status == OrderStatus.FAILED
        assert "400" in order.error
        assert order.provider_job_id is None
        stored = await services.bridge.get_order(FAMILY, order.id)
        assert stored.status == OrderStatus.FAILED

    async def test_requires_complete_job(self, services, page_factory):
        services.pages.add(page_factory("edge", [dict(id="e", x=0, y=0, width=50, height=50)]))
        blocked = await services.controller.submit(CompileRequest(
            family_id=FAMILY, book_size="small-square", page_ids=["edge"],
        ))
        with pytest.raises(JobNotCompleteError):
            await services.bridge.place_order(_order(blocked.job.id))
        with pytest.raises(JobNotFoundError):
            await services.bridge.place_order(_order("no-such-job"))
        assert services.orders.orders == {}


@pytest.mark.asyncio
class TestProviderStatus:
    async def test_refresh_maps_status(self, services, fake_lulu, complete_job):
        order = await services.bridge.place_order(_order(complete_job.id))

        fake_lulu.status_name = "IN_PRODUCTION"
        order = await services.bridge.refresh_order(FAMILY, order.id)
        assert order.status == OrderStatus.PRINTING

        fake_lulu.status_name = "SHIPPED"
        fake_lulu.tracking = {"tracking_id": "1Z999", "tracking_urls": ["https://track.test/1Z999"]}
        order = await services.bridge.refresh_order(FAMILY, order.id)
        assert order.status == OrderStatus.SHIPPED
        assert order.tracking_number == "1Z999"
        assert order.tracking_url == "https://track.test/1Z999"
        assert order.status_history[-1].tracking_number == "1Z999"

    async def test_webhook(self, services, complete_job):
        order = await services.bridge.place_order(_order(complete_job.id))
        updated = await services.bridge.apply_webhook({
            "topic": "PRINT_JOB_STATUS_CHANGED",
            "data": {"id": 9001, "status": {"name": "PRODUCTION_READY"}},
        })
        assert updated.id == order.id
        assert updated.status == OrderStatus.PROCESSING
        assert updated.provider_status == "PRODUCTION_READY"

    async def test_webhook_unknown_job(self, services):
        with pytest.raises(OrderNotFoundError):
            await services.bridge.apply_webhook({"data": {"id": 1, "status": {"name": "SHIPPED"}}})

    async def test_backwards_status_ignored(self, services, fake_lulu, complete_job):
        order = await services.bridge.place_order(_order(complete_job.id))
        fake_lulu.status_name = "SHIPPED"
        await services.bridge.refresh_order(FAMILY, order.id)
        fake_lulu.status_name = "REJECTED"
        order = await services.bridge.refresh_order(FAMILY, order.id)
        assert order.status == OrderStatus.SHIPPED

    async def test_unknown_status_recorded_without_transition(self, services, fake_lulu, complete_job):
        order = await services.bridge.place_order(_order(complete_job.id))
        fake_lulu.status_name = "ON_HOLD_FOR_REVIEW"
        order = await services.bridge.refresh_order(FAMILY, order.id)
        assert order.status == OrderStatus.SUBMITTED
        assert order.provider_status == "ON_HOLD_FOR_REVIEW"

    async def test_same_status_adds_no_event(self, services, complete_job):
        order = await services.bridge.place_order(_order(complete_job.id))
        refreshed = await services.bridge.refresh_order(FAMILY, order.id)
        assert len(refreshed.status_history) == len(order.status_history)

    async def test_cancel(self, services, fake_lulu, complete_job):
        order = await services.bridge.place_order(_order(complete_job.id))
        cancelled = await services.bridge.cancel_order(FAMILY, order.id)
        assert cancelled.status == OrderStatus.CANCELLED
        assert "DELETE /print-jobs/9001/" in fake_lulu.paths()
        with pytest.raises(InvalidTransitionError):
            await services.bridge.cancel_order(FAMILY, order.id)

    async def test_tracking_details_from_webhook_shape(self):
        number, url = tracking_details({"shipping_info": {"tracking_id": "T1", "tracking_url": "https://t/1"}})
        assert (number, url) == ("T1", "https://t/1")
        assert tracking_details({}) == (None, None)
