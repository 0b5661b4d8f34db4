"""Tests for catalog shaping and read-through caching."""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from sales_helper.catalog.kv import CONTACTS_KEY, PRODUCTS_KEY, CacheEntry, KVCache
from sales_helper.catalog.service import CatalogService
from sales_helper.catalog.transform import (
    OTHER_CATEGORY,
    UNKNOWN_GROUP,
    UNKNOWN_MINE,
    contacts_hierarchy,
    filter_contacts,
    products_catalog,
)
from sales_helper.errors import ExternalError, NetworkError
from sales_helper.schemas.pipedrive import (
    PipedriveOrganization,
    PipedrivePerson,
    PipedriveProduct,
)


@pytest.fixture
def persons():
    return [
        PipedrivePerson.model_validate(
            {"id": 1, "name": "Thandi", "org_id": {"value": 9, "name": "Shaft 4"}}
        ),
        PipedrivePerson.model_validate(
            {
                "id": 2,
                "name": "Pieter",
                "phone": [{"value": "011"}, {"value": "082", "primary": True}],
            }
        ),
    ]


@pytest.fixture
def orgs():
    return [PipedriveOrganization.model_validate({"id": 9, "name": "Shaft 4", "mine_group": "North"})]


@pytest.fixture
def hierarchy(persons, orgs):
    return contacts_hierarchy(persons, orgs, "mine_group")


class TestTransforms:
    """Test catalog shaping."""

    def test_contacts_grouped_by_group_and_mine(self, hierarchy):
        thandi = hierarchy["North"]["Shaft 4"][0]
        assert thandi["personId"] == 1
        assert thandi["mineGroup"] == "North"
        assert thandi["mineName"] == "Shaft 4"
        assert thandi["orgId"] == 9

    def test_contact_without_org_lands_in_unknown(self, hierarchy):
        pieter = hierarchy[UNKNOWN_GROUP][UNKNOWN_MINE][0]
        assert pieter["name"] == "Pieter"
        assert pieter["phone"] == "082"
        assert pieter["orgId"] is None

    def test_products_by_category(self):
        products = [
            PipedriveProduct.model_validate({"id": 1, "name": "Helmet", "category": "3", "price": 45}),
            PipedriveProduct.model_validate(
                {"id": 2, "name": "Drill", "category": 2, "prices": [{"price": 900, "currency": "ZAR"}]}
            ),
            PipedriveProduct.model_validate({"id": 3, "name": "Misc"}),
        ]

        catalog = products_catalog(products)

        assert catalog["Personal Protective Equipment"][0]["price"] == 45
        assert catalog["Mining Tools"][0]["price"] == 900
        assert catalog[OTHER_CATEGORY][0] == {
            "productId": 3,
            "name": "Misc",
            "code": None,
            "category": OTHER_CATEGORY,
            "price": 0.0,
            "shortDescription": "",
        }

    def test_filter_by_contact_name(self, hierarchy):
        result = filter_contacts(hierarchy, "pIeT")
        assert list(result) == [UNKNOWN_GROUP]

    def test_filter_by_mine_keeps_all_its_contacts(self, hierarchy):
        result = filter_contacts(hierarchy, "shaft")
        assert result == {"North": {"Shaft 4": hierarchy["North"]["Shaft 4"]}}

    def test_blank_filter_returns_everything(self, hierarchy):
        assert filter_contacts(hierarchy, "  ") is hierarchy


@pytest.fixture
def cache():
    kv = AsyncMock()
    kv.get = AsyncMock(return_value=None)
    kv.set = AsyncMock()
    kv.bust = AsyncMock(return_value=True)
    return kv


@pytest.fixture
def pipedrive(persons, orgs):
    client = AsyncMock()
    client.fetch_contacts = AsyncMock(return_value=(persons, orgs))
    client.fetch_products = AsyncMock(return_value=[])
    return client


def entry(data, stale=False):
    return CacheEntry(data=data, timestamp=0, ttl=100, stale=stale)


class TestCatalogService:
    """Test CatalogService read-through behavior."""

    @pytest.mark.asyncio
    async def test_fresh_cache_served(self, cache, pipedrive):
        cache.get = AsyncMock(return_value=entry({"G": {}}))
        service = CatalogService(cache, pipedrive)

        result = await service.contacts()

        assert result.source == "cache"
        assert result.stale is False
        pipedrive.fetch_contacts.assert_not_called()

    @pytest.mark.asyncio
    async def test_miss_loads_and_stores(self, cache, pipedrive):
        service = CatalogService(cache, pipedrive)

        result = await service.contacts()

        assert result.source == "pipedrive"
        assert "North" in result.data
        cache.set.assert_awaited_once_with(CONTACTS_KEY, result.data)

    @pytest.mark.asyncio
    async def test_force_refresh_skips_fresh_cache(self, cache, pipedrive):
        cache.get = AsyncMock(return_value=entry({}))
        service = CatalogService(cache, pipedrive)

        result = await service.products(force_refresh=True)

        assert result.source == "pipedrive"
        pipedrive.fetch_products.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stale_fallback_when_pipedrive_down(self, cache, pipedrive):
        cache.get = AsyncMock(return_value=entry({"Old": {}}, stale=True))
        pipedrive.fetch_contacts = AsyncMock(side_effect=NetworkError("down"))
        service = CatalogService(cache, pipedrive)

        result = await service.contacts()

        assert result.source == "cache_fallback"
        assert result.stale is True
        assert result.data == {"Old": {}}
        assert result.to_dict()["error"] == "Pipedrive temporarily unavailable"
        cache.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_cache_and_pipedrive_down(self, cache, pipedrive):
        pipedrive.fetch_products = AsyncMock(side_effect=NetworkError("down"))
        service = CatalogService(cache, pipedrive)

        with pytest.raises(ExternalError):
            await service.products()

    @pytest.mark.asyncio
    async def test_redis_down_still_serves_pipedrive(self, cache, pipedrive):
        cache.get = AsyncMock(side_effect=RedisConnectionError("no redis"))
        cache.set = AsyncMock(side_effect=RedisConnectionError("no redis"))
        service = CatalogService(cache, pipedrive)

        result = await service.contacts()

        assert result.source == "pipedrive"

    @pytest.mark.asyncio
    async def test_corrupt_cache_entry_reloads_from_pipedrive(self, mock_redis, pipedrive):
        mock_redis.get = AsyncMock(return_value="{not json")
        service = CatalogService(KVCache(mock_redis), pipedrive)

        result = await service.products()

        assert result.source == "pipedrive"
        assert result.stale is False
        pipedrive.fetch_products.assert_awaited_once()
        assert mock_redis.setex.await_args.args[0] == PRODUCTS_KEY

    @pytest.mark.asyncio
    async def test_query_filters_result(self, cache, pipedrive):
        service = CatalogService(cache, pipedrive)

        result = await service.contacts(query="thandi")

        assert list(result.data) == ["North"]

    @pytest.mark.asyncio
    async def test_refresh_busts_both_keys(self, cache, pipedrive):
        service = CatalogService(cache, pipedrive)

        assert await service.refresh() == [CONTACTS_KEY, PRODUCTS_KEY]
        assert cache.bust.await_count == 2
