"""Unit tests for the local price estimate and provider package ids."""

import pytest

from bookpress.fulfillment.lulu import pod_package_id
from bookpress.fulfillment.pricing import estimate_cost
from bookpress.models.book import BookSize, CoverType
from bookpress.models.order import ShippingLevel


class TestEstimate:
    def test_softcover_8x8(self):
        cost = estimate_cost(BookSize.SMALL_SQUARE, CoverType.SOFT, 20, 1, ShippingLevel.MAIL)
        assert cost.printing_cost == pytest.approx(14.9)
        assert cost.shipping_cost == pytest.approx(5.99)
        assert cost.total_cost_incl_tax == pytest.approx(20.89)
        assert cost.is_estimate is True

    def test_quantity_scales_printing_only(self):
        one = estimate_cost(BookSize.LARGE_SQUARE, CoverType.HARD, 40, 1, ShippingLevel.GROUND)
        three = estimate_cost(BookSize.LARGE_SQUARE, CoverType.HARD, 40, 3, ShippingLevel.GROUND)
        assert three.printing_cost == pytest.approx(one.printing_cost * 3)
        assert three.shipping_cost == one.shipping_cost

    def test_faster_shipping_costs_more(self):
        mail = estimate_cost(BookSize.PORTRAIT, CoverType.SOFT, 30, 1, ShippingLevel.MAIL)
        express = estimate_cost(BookSize.PORTRAIT, CoverType.SOFT, 30, 1, ShippingLevel.EXPEDITED)
        assert express.total_cost_excl_tax > mail.total_cost_excl_tax


class TestPackages:
    def test_binding_codes(self):
        assert pod_package_id(BookSize.SMALL_SQUARE, CoverType.SOFT).startswith("0850X0850")
        assert "STDHC" in pod_package_id(BookSize.PORTRAIT, CoverType.HARD)
        assert "STDPB" in pod_package_id(BookSize.LARGE_SQUARE, CoverType.SOFT)
