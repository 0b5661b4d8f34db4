"""Tests for the Pipedrive client against a mocked transport."""

import json

import httpx
import pytest

from sales_helper.errors import CRMTimeoutError, NetworkError, RemoteRejection, ShapeError
from sales_helper.pipedrive.client import (
    MockDealCreator,
    PipedriveClient,
    deal_title,
    deal_url,
)
from sales_helper.schemas.request import Contact, LineItem


def make_client(handler) -> PipedriveClient:
    return PipedriveClient(
        api_token="token",
        base_url="https://api.test/v1/",
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def org_contact():
    return Contact(
        person_id=11,
        name="Thandi",
        mine_group="Northern Group",
        mine_name="Shaft 4",
        org_id=22,
    )


@pytest.fixture
def items():
    return [
        LineItem(product_id=3, name="Helmet", quantity=2, unit_price=45.5),
        LineItem(product_id=4, name="Boots", quantity=1, unit_price=120.0),
    ]


class TestCreateDeal:
    """Test deal creation."""

    @pytest.mark.asyncio
    async def test_creates_deal_then_attaches_products(self, org_contact, items):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content) if request.content else None
            calls.append((request.method, request.url.path, body, dict(request.url.params)))
            if request.url.path == "/v1/deals":
                return httpx.Response(200, json={"success": True, "data": {"id": 321}})
            return httpx.Response(200, json={"success": True, "data": {"id": 1}})

        client = make_client(handler)
        deal_id = await client.create_deal(org_contact, items, reference="QR-007")
        await client.aclose()

        assert deal_id == 321
        assert [c[1] for c in calls] == [
            "/v1/deals",
            "/v1/deals/321/products",
            "/v1/deals/321/products",
        ]

        deal_body = calls[0][2]
        assert deal_body["title"] == "[QR-007] - [Northern Group] - [Shaft 4]"
        assert deal_body["person_id"] == 11
        assert deal_body["org_id"] == 22
        assert deal_body["pipeline_id"] == 9
        assert deal_body["stage_id"] == 57
        assert "user_id" not in deal_body
        assert calls[0][3]["api_token"] == "token"

        assert calls[1][2] == {"product_id": 3, "quantity": 2, "item_price": 45.5}

    @pytest.mark.asyncio
    async def test_org_omitted_when_unknown(self, contact, line_item):
        seen = {}

        def handler(request):
            if request.url.path == "/v1/deals":
                seen.update(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "data": {"id": 5}})

        client = make_client(handler)
        await client.create_deal(contact, [line_item], reference="QR-001")
        await client.aclose()

        assert "org_id" not in seen

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_server_trouble_is_retryable(self, contact, line_item, status):
        client = make_client(lambda request: httpx.Response(status, json={"success": False}))

        with pytest.raises(NetworkError) as exc_info:
            await client.create_deal(contact, [line_item], reference="QR-001")
        await client.aclose()

        assert exc_info.value.retryable is True
        assert exc_info.value.data == {"status": status}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 404])
    async def test_client_errors_are_rejections(self, contact, line_item, status):
        client = make_client(lambda request: httpx.Response(status, json={"success": False}))

        with pytest.raises(RemoteRejection) as exc_info:
            await client.create_deal(contact, [line_item], reference="QR-001")
        await client.aclose()

        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_success_false_is_rejection(self, contact, line_item):
        client = make_client(
            lambda request: httpx.Response(
                200, json={"success": False, "error": "Person not found"}
            )
        )

        with pytest.raises(RemoteRejection, match="Person not found"):
            await client.create_deal(contact, [line_item], reference="QR-001")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unreadable_body_is_rejection(self, contact, line_item):
        client = make_client(lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(RemoteRejection):
            await client.create_deal(contact, [line_item], reference="QR-001")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_timeout(self, contact, line_item):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)
        with pytest.raises(CRMTimeoutError) as exc_info:
            await client.create_deal(contact, [line_item], reference="QR-001")
        await client.aclose()

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_connection_failure(self, contact, line_item):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(NetworkError):
            await client.create_deal(contact, [line_item], reference="QR-001")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_deal_without_id_is_shape_error(self, contact, line_item):
        client = make_client(
            lambda request: httpx.Response(200, json={"success": True, "data": {"title": "x"}})
        )

        with pytest.raises(ShapeError):
            await client.create_deal(contact, [line_item], reference="QR-001")
        await client.aclose()


class TestFetch:
    """Test catalog reads."""

    @pytest.mark.asyncio
    async def test_fetch_contacts(self):
        def handler(request):
            assert request.url.params["limit"] == "500"
            if request.url.path == "/v1/persons":
                data = [
                    {
                        "id": 1,
                        "name": "Thandi",
                        "email": [{"value": "t@example.com", "primary": True}],
                        "org_id": {"value": 9, "name": "Shaft 4"},
                        "owner_id": 3,
                    }
                ]
            else:
                data = [{"id": 9, "name": "Shaft 4", "mine_group": "Northern Group"}]
            return httpx.Response(200, json={"success": True, "data": data})

        client = make_client(handler)
        persons, orgs = await client.fetch_contacts()
        await client.aclose()

        assert persons[0].primary(persons[0].email) == "t@example.com"
        assert persons[0].org_id.value == 9
        assert orgs[0].custom_field("mine_group") == "Northern Group"

    @pytest.mark.asyncio
    async def test_fetch_products_empty(self):
        client = make_client(lambda request: httpx.Response(200, json={"success": True, "data": None}))

        assert await client.fetch_products() == []
        await client.aclose()


class TestHelpers:
    """Test module helpers."""

    def test_deal_title(self, contact):
        assert deal_title("QR-042", contact) == "[QR-042] - [G] - [M]"

    def test_deal_url(self):
        assert deal_url(12, "mock") == "#mock-deal-12"
        assert deal_url(12, "live") == "https://yourcompany.pipedrive.com/deal/12"

    @pytest.mark.asyncio
    async def test_mock_creator_never_calls_out(self, contact, line_item):
        creator = MockDealCreator()

        deal_id = await creator.create_deal(contact, [line_item], reference="QR-001")

        assert creator.mode == "mock"
        assert 100000 <= deal_id <= 999999
