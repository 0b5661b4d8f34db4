"""Pipedrive REST client."""

from __future__ import annotations

import random
from typing import Any, Optional, Sequence

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError

from sales_helper.config import settings
from sales_helper.errors import CRMTimeoutError, NetworkError, RemoteRejection, ShapeError
from sales_helper.schemas.pipedrive import (
    PipedriveDeal,
    PipedriveEnvelope,
    PipedriveOrganization,
    PipedrivePerson,
    PipedriveProduct,
)
from sales_helper.schemas.request import Contact, LineItem

logger = structlog.get_logger()

PAGE_LIMIT = 500

# Lazy singletons
_live_client: Optional["PipedriveClient"] = None
_mock_client: Optional["MockDealCreator"] = None


def deal_title(reference: str, contact: Contact) -> str:
    return f"[{reference}] - [{contact.mine_group}] - [{contact.mine_name}]"


class PipedriveClient:
    """Async Pipedrive API client.

    Transport problems, 429 and 5xx responses become ``NetworkError``
    (retryable); timeouts become ``CRMTimeoutError``; any other refusal is a
    ``RemoteRejection``.
    """

    mode = "live"

    def __init__(
        self,
        api_token: str,
        base_url: str = "https://api.pipedrive.com/v1",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_token = api_token
        self.http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _call(
        self,
        method: str,
        endpoint: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> PipedriveEnvelope:
        query = {**(params or {}), "api_token": self.api_token}
        try:
            response = await self.http.request(method, endpoint, json=json, params=query)
        except httpx.TimeoutException as e:
            logger.warning("pipedrive_timeout", method=method, endpoint=endpoint)
            raise CRMTimeoutError(f"Pipedrive timed out on {method} {endpoint}") from e
        except httpx.TransportError as e:
            logger.warning(
                "pipedrive_transport_error", method=method, endpoint=endpoint, error=str(e)
            )
            raise NetworkError(f"Failed to reach Pipedrive: {e}") from e

        logger.debug(
            "pipedrive_response",
            method=method,
            endpoint=endpoint,
            status=response.status_code,
        )

        if response.status_code == 429 or response.status_code >= 500:
            raise NetworkError(
                f"Pipedrive API error: {response.status_code} {response.reason_phrase}",
                data={"status": response.status_code},
            )
        if response.is_error:
            logger.warning(
                "pipedrive_rejected",
                method=method,
                endpoint=endpoint,
                status=response.status_code,
                body=response.text[:500],
            )
            raise RemoteRejection(
                f"Pipedrive API error: {response.status_code} {response.reason_phrase}",
                data={"status": response.status_code},
            )

        try:
            envelope = PipedriveEnvelope.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise RemoteRejection(f"Unreadable Pipedrive response for {endpoint}") from e

        if not envelope.success:
            raise RemoteRejection(
                f"Pipedrive refused {method} {endpoint}: {envelope.error or 'unknown error'}"
            )
        return envelope

    async def create_deal(
        self,
        contact: Contact,
        line_items: Sequence[LineItem],
        *,
        reference: str,
    ) -> int:
        """Create a deal for the contact and attach every line item.

        Args:
            contact: Person the deal is for
            line_items: Products to attach
            reference: Request code (``QR-###``) used in the deal title

        Returns:
            Pipedrive deal id
        """
        payload: dict[str, Any] = {
            "title": deal_title(reference, contact),
            "pipeline_id": settings.pipedrive_pipeline_id,
            "stage_id": settings.pipedrive_stage_id,
            "person_id": contact.person_id,
        }
        if contact.org_id is not None:
            payload["org_id"] = contact.org_id
        if settings.pipedrive_user_id:
            payload["user_id"] = settings.pipedrive_user_id

        envelope = await self._call("POST", "/deals", json=payload)
        deal = self._parse(PipedriveDeal, envelope.data, "deal")

        for item in line_items:
            await self._call(
                "POST",
                f"/deals/{deal.id}/products",
                json={
                    "product_id": item.product_id,
                    "quantity": item.quantity,
                    "item_price": item.unit_price,
                },
            )

        logger.info(
            "pipedrive_deal_created",
            deal_id=deal.id,
            reference=reference,
            products=len(line_items),
        )
        return deal.id

    async def fetch_contacts(
        self,
    ) -> tuple[list[PipedrivePerson], list[PipedriveOrganization]]:
        persons = await self._call("GET", "/persons", params={"limit": PAGE_LIMIT})
        orgs = await self._call("GET", "/organizations", params={"limit": PAGE_LIMIT})
        return (
            [self._parse(PipedrivePerson, row, "person") for row in persons.data or []],
            [self._parse(PipedriveOrganization, row, "organization") for row in orgs.data or []],
        )

    async def fetch_products(self) -> list[PipedriveProduct]:
        envelope = await self._call("GET", "/products", params={"limit": PAGE_LIMIT})
        return [self._parse(PipedriveProduct, row, "product") for row in envelope.data or []]

    @staticmethod
    def _parse(model, data: Any, label: str):
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise ShapeError(
                f"Unexpected Pipedrive {label} payload",
                data={"errors": e.errors(include_url=False, include_context=False)},
            ) from e


class MockDealCreator:
    """Simulates deal creation without calling Pipedrive."""

    mode = "mock"

    async def create_deal(
        self,
        contact: Contact,
        line_items: Sequence[LineItem],
        *,
        reference: str,
    ) -> int:
        deal_id = random.randint(100000, 999999)
        logger.info(
            "mock_deal_created",
            deal_id=deal_id,
            reference=reference,
            title=deal_title(reference, contact),
            products=len(line_items),
        )
        return deal_id


def get_pipedrive_client() -> PipedriveClient:
    """Get or create the singleton live Pipedrive client."""
    global _live_client
    if _live_client is None:
        _live_client = PipedriveClient(
            api_token=settings.pipedrive_api_token,
            base_url=settings.pipedrive_base_url,
            timeout=settings.pipedrive_timeout_seconds,
        )
        logger.info("pipedrive_client_initialized", base_url=settings.pipedrive_base_url)
    return _live_client


def get_deal_creator():
    """Deal creator for the configured ``external_submit_mode``."""
    global _mock_client
    if settings.external_submit_mode == "live":
        return get_pipedrive_client()
    if _mock_client is None:
        _mock_client = MockDealCreator()
    return _mock_client


def deal_url(deal_id: int, mode: str) -> str:
    if mode == "mock":
        return f"#mock-deal-{deal_id}"
    return f"https://{settings.pipedrive_company_domain}.pipedrive.com/deal/{deal_id}"


async def close_pipedrive_client() -> None:
    global _live_client
    if _live_client is not None:
        await _live_client.aclose()
        _live_client = None
