"""
BookPress — Lulu print-on-demand API client.

Base URL: https://api.lulu.com
Auth: OAuth client credentials → Bearer token on every request.

Key endpoints used:
  POST   /auth/realms/glasstree/protocol/openid-connect/token  — access token
  POST   /print-job-cost-calculations/                         — price a job
  POST   /print-jobs/                                          — create a job
  GET    /print-jobs/{id}/                                     — job status
  DELETE /print-jobs/{id}/                                     — cancel (within production delay)
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx

from bookpress.errors import ProviderAPIError
from bookpress.models.book import BookSize, CoverType
from bookpress.models.order import CostBreakdown, ShippingAddress, ShippingLevel
from bookpress.utils.logging import logger, step_timer

MAX_RETRIES = 1
TOKEN_PATH = "/auth/realms/glasstree/protocol/openid-connect/token"

# {width}X{height} FC (full colour) STDPB/STDHC (binding) 080 (80# paper) …
POD_PACKAGES: dict[BookSize, dict[CoverType, str]] = {
    BookSize.SMALL_SQUARE: {
        CoverType.SOFT: "0850X0850FCSTDPB080UW444",
        CoverType.HARD: "0850X0850FCSTDHC080CW444",
    },
    BookSize.LARGE_SQUARE: {
        CoverType.SOFT: "1000X1000FCSTDPB080UW444",
        CoverType.HARD: "1000X1000FCSTDHC080CW444",
    },
    BookSize.PORTRAIT: {
        CoverType.SOFT: "0850X1100FCSTDPB080UW444",
        CoverType.HARD: "0850X1100FCSTDHC080CW444",
    },
}


def pod_package_id(book_size: BookSize, cover_type: CoverType) -> str:
    return POD_PACKAGES[book_size][cover_type]


def _address_payload(address: ShippingAddress, full: bool = False) -> dict[str, str]:
    payload = {
        "city": address.city,
        "country_code": address.country,
        "postcode": address.postal_code,
        "state_code": address.state,
        "street1": address.street1,
    }
    if full:
        payload.update({
            "name": address.name,
            "phone_number": address.phone,
            "street2": address.street2,
        })
    return payload


def _money(value: Any) -> float:
    try:
        return round(float(value), 2)
    except (TypeError, ValueError):
        return 0.0


class LuluClient:
    """Thin async wrapper around the Lulu Print API."""

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._transport = transport
        self._token: str | None = None
        self._token_expires = 0.0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires:
            return self._token
        if not self.client_id or not self.client_secret:
            raise ProviderAPIError("auth", 401, "Lulu API credentials not configured")

        async with self._client() as client:
            resp = await client.post(
                f"{self.base_url}{TOKEN_PATH}",
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
            )
        if not resp.is_success:
            logger.error("  Lulu auth returned %d: %s", resp.status_code, resp.text[:200])
            raise ProviderAPIError("auth", resp.status_code, resp.text)

        data = resp.json()
        if not isinstance(data, dict) or "access_token" not in data:
            raise ProviderAPIError("auth", resp.status_code, f"no access token in response: {resp.text}")
        self._token = data["access_token"]
        # refresh a minute early
        self._token_expires = time.monotonic() + max(int(data.get("expires_in", 3600)) - 60, 0)
        return self._token

    async def _request(self, operation: str, method: str, path: str, json: dict | None = None) -> httpx.Response:
        """Authenticated call. Retries once on transport errors and 5xx."""
        token = await self._access_token()
        last_err: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 2):
            try:
                async with self._client() as client:
                    resp = await client.request(
                        method,
                        f"{self.base_url}{path}",
                        headers={"Authorization": f"Bearer {token}"},
                        json=json,
                    )
                if resp.status_code >= 500 and attempt <= MAX_RETRIES:
                    logger.warning("  Lulu %s returned %d, retrying (attempt %d)", operation, resp.status_code, attempt)
                    await asyncio.sleep(1)
                    continue
                if not resp.is_success:
                    logger.error("  Lulu %s returned %d: %s", operation, resp.status_code, resp.text[:200])
                    raise ProviderAPIError(operation, resp.status_code, resp.text)
                return resp
            except httpx.TransportError as exc:
                last_err = exc
                if attempt <= MAX_RETRIES:
                    logger.warning("  Retrying Lulu %s in 1s (attempt %d failed)", operation, attempt)
                    await asyncio.sleep(1)
        raise ProviderAPIError(operation, 503, str(last_err))

    # ---- High-level operations ----

    async def calculate_cost(
        self,
        book_size: BookSize,
        cover_type: CoverType,
        page_count: int,
        quantity: int,
        address: ShippingAddress,
        shipping_level: ShippingLevel,
    ) -> CostBreakdown:
        with step_timer("Lulu — cost calculation"):
            resp = await self._request("cost calculation", "POST", "/print-job-cost-calculations/", {
                "line_items": [{
                    "page_count": page_count,
                    "pod_package_id": pod_package_id(book_size, cover_type),
                    "quantity": quantity,
                }],
                "shipping_address": _address_payload(address),
                "shipping_level": shipping_level.value,
            })
        data = resp.json()
        if not isinstance(data, dict):
            raise ProviderAPIError("cost calculation", resp.status_code, f"unexpected body: {resp.text}")
        line_items = data.get("line_item_costs") or [{}]
        if not isinstance(line_items[0], dict):
            raise ProviderAPIError("cost calculation", resp.status_code, "malformed line_item_costs")
        return CostBreakdown(
            currency=data.get("currency", "USD"),
            printing_cost=_money(line_items[0].get("total_cost_excl_tax")),
            shipping_cost=_money((data.get("shipping_cost") or {}).get("total_cost_excl_tax")),
            tax=_money(data.get("total_tax")),
            total_cost_excl_tax=_money(data.get("total_cost_excl_tax")),
            total_cost_incl_tax=_money(data.get("total_cost_incl_tax")),
            is_estimate=False,
        )

    async def create_print_job(
        self,
        external_id: str,
        book_size: BookSize,
        cover_type: CoverType,
        page_count: int,
        quantity: int,
        interior_url: str,
        cover_url: str,
        address: ShippingAddress,
        shipping_level: ShippingLevel,
        contact_email: str,
        production_delay: int = 120,
    ) -> dict[str, Any]:
        """Submit a print job. Returns the provider's job document (has 'id')."""
        with step_timer("Lulu — create print job"):
            resp = await self._request("create print job", "POST", "/print-jobs/", {
                "contact_email": contact_email,
                "external_id": external_id,
                "line_items": [{
                    "page_count": page_count,
                    "pod_package_id": pod_package_id(book_size, cover_type),
                    "quantity": quantity,
                    "printable_normalization": {
                        "cover": {"source_url": cover_url},
                        "interior": {"source_url": interior_url},
                    },
                }],
                "production_delay": production_delay,
                "shipping_address": _address_payload(address, full=True),
                "shipping_level": shipping_level.value,
            })
        data = resp.json()
        logger.info("  Lulu print job %s created (%s)", data.get("id"), (data.get("status") or {}).get("name"))
        return data

    async def get_print_job(self, print_job_id: str) -> dict[str, Any]:
        resp = await self._request("status", "GET", f"/print-jobs/{print_job_id}/")
        return resp.json()

    async def cancel_print_job(self, print_job_id: str) -> None:
        with step_timer(f"Lulu — cancel print job {print_job_id}"):
            await self._request("cancel", "DELETE", f"/print-jobs/{print_job_id}/")
