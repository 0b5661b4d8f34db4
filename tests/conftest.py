"""Test fixtures and configuration."""

import uuid
from unittest.mock import AsyncMock

import pytest

from sales_helper.lifecycle.manager import RequestLifecycleManager
from sales_helper.schemas.request import Contact, LineItem, RequestRecord, RequestStatus


@pytest.fixture
def contact():
    return Contact(person_id=1, name="A", mine_group="G", mine_name="M")


@pytest.fixture
def line_item():
    return LineItem(product_id=1, name="P", quantity=1, unit_price=100.0)


@pytest.fixture
def draft_request():
    """Fresh draft: no contact, no line items."""
    return RequestRecord(
        id=uuid.uuid4(),
        request_id="QR-001",
        status=RequestStatus.DRAFT,
        salesperson_selection="James",
    )


@pytest.fixture
def ready_request(contact, line_item):
    """Draft with everything needed for submission."""
    return RequestRecord(
        id=uuid.uuid4(),
        request_id="QR-002",
        status=RequestStatus.DRAFT,
        salesperson_selection="James",
        contact=contact,
        line_items=[line_item],
    )


@pytest.fixture
def deal_creator():
    """Mock CRM collaborator returning deal 555."""
    creator = AsyncMock()
    creator.mode = "mock"
    creator.create_deal = AsyncMock(return_value=555)
    return creator


@pytest.fixture
def manager(deal_creator):
    return RequestLifecycleManager(deal_creator, timeout=5)


@pytest.fixture
def mock_redis():
    """Mock Redis client."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.ttl = AsyncMock(return_value=-2)
    redis.setex = AsyncMock()
    redis.set = AsyncMock()
    redis.delete = AsyncMock(return_value=1)
    return redis
