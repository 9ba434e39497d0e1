"""Shared test configuration and fixtures for the BookPress test suite."""

import asyncio
import hashlib
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlparse

import pytest

# Add backend to Python path so imports work
backend_dir = str(Path(__file__).parent.parent / "backend")
if backend_dir not in sys.path:
    sys.path.insert(0, backend_dir)

import fitz  # noqa: E402
import httpx  # noqa: E402

from bookpress.models.page import EditorItem, PageState, ScrapbookPage  # noqa: E402

FAMILY = "fam-1"
SECRET = "test-render-secret"


def solid_png(width: int, height: int, rgb: tuple[int, int, int] = (200, 180, 160)) -> bytes:
    pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, width, height), False)
    pix.set_rect(pix.irect, rgb)
    return pix.tobytes("png")


def color_for(page_id: str) -> tuple[int, int, int]:
    d = hashlib.sha256(page_id.encode()).digest()
    return d[0], d[1], d[2]


class FakeSnapshotter:
    """Returns a solid PNG of exactly the viewport, one colour per page id."""

    color_for = staticmethod(color_for)

    def __init__(self):
        self.calls: list[tuple[str, object]] = []
        self.delays: dict[str, float] = {}
        self.failures: dict[str, Exception] = {}
        self.hang: set[str] = set()
        self.size_override: tuple[int, int] | None = None
        self.cancelled: list[str] = []

    async def rasterize(self, url, viewport):
        self.calls.append((url, viewport))
        page_id = urlparse(url).path.rstrip("/").split("/")[-1]
        try:
            if page_id in self.delays:
                await asyncio.sleep(self.delays[page_id])
            if page_id in self.hang:
                await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled.append(page_id)
            raise
        if page_id in self.failures:
            raise self.failures[page_id]
        width, height = self.size_override or (viewport.width, viewport.height)
        return solid_png(width, height, color_for(page_id))

    def rendered_page_ids(self) -> list[str]:
        return [urlparse(url).path.rstrip("/").split("/")[-1] for url, _ in self.calls]


class FakeLulu:
    """MockTransport handler for the print provider API."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.fail_cost = False
        self.cost_body: object | None = None
        self.fail_create = False
        self.status_name = "CREATED"
        self.tracking: dict | None = None
        self.next_id = 9001
        self.transport = httpx.MockTransport(self.handler)

    def paths(self) -> list[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/openid-connect/token"):
            return httpx.Response(200, json={"access_token": "lulu-token", "expires_in": 3600})
        if path == "/print-job-cost-calculations/":
            if self.fail_cost:
                return httpx.Response(500, json={"detail": "upstream down"})
            if self.cost_body is not None:
                return httpx.Response(200, json=self.cost_body)
            return httpx.Response(200, json={
                "currency": "USD",
                "line_item_costs": [{"total_cost_excl_tax": "18.40"}],
                "shipping_cost": {"total_cost_excl_tax": "5.99"},
                "total_tax": "1.95",
                "total_cost_excl_tax": "24.39",
                "total_cost_incl_tax": "26.34",
            })
        if path == "/print-jobs/" and request.method == "POST":
            if self.fail_create:
                return httpx.Response(400, json={"shipping_address": ["invalid postcode"]})
            return httpx.Response(201, json={"id": self.next_id, "status": {"name": "CREATED"}})
        if path.startswith("/print-jobs/") and request.method == "GET":
            body = {"id": int(path.strip("/").split("/")[-1]), "status": {"name": self.status_name}}
            if self.tracking:
                body["line_items"] = [self.tracking]
            return httpx.Response(200, json=body)
        if path.startswith("/print-jobs/") and request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(404, json={"detail": "not found"})


def make_page(page_id: str, items: list[dict] | None = None, family_id: str = FAMILY,
              updated_at: datetime | None = None, background: str = "cream") -> ScrapbookPage:
    return ScrapbookPage(
        id=page_id,
        family_id=family_id,
        title=f"Title {page_id}",
        updated_at=updated_at or datetime(2026, 3, 1, tzinfo=timezone.utc),
        state=PageState(background=background, items=[EditorItem(**i) for i in (items or [])]),
    )


@pytest.fixture(scope="session")
def project_root():
    return Path(__file__).parent.parent


@pytest.fixture
def page_factory():
    return make_page


@pytest.fixture
def png_factory():
    return solid_png


@pytest.fixture
def snapshotter():
    return FakeSnapshotter()


@pytest.fixture
def fake_lulu():
    return FakeLulu()


@pytest.fixture
def test_config():
    from bookpress.core.config import settings

    return replace(
        settings,
        env="test",
        render=replace(
            settings.render,
            base_url="http://bookpress.test",
            token_secret=SECRET,
            token_ttl=300,
            timeout=5.0,
            concurrency=3,
            scale=1.0,
        ),
        storage=replace(settings.storage, backend="memory", download_ttl=3600, provider_ttl=86400),
        compile=replace(settings.compile, cache_bucket_seconds=86400, seconds_per_page=5, merge_overhead_seconds=30),
        lulu=replace(
            settings.lulu,
            base_url="https://lulu.test",
            client_id="client",
            client_secret="secret",
            contact_email="books@example.com",
            production_delay=120,
        ),
    )


@pytest.fixture
def services(test_config, snapshotter, fake_lulu):
    from bookpress.container import build_services
    from bookpress.fulfillment.lulu import LuluClient

    lulu = LuluClient("https://lulu.test", "client", "secret", transport=fake_lulu.transport)
    return build_services(test_config, snapshotter=snapshotter, lulu=lulu, cover_scale=0.1)
