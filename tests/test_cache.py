import json
from decimal import Decimal
from unittest.mock import Mock

import pytest
import redis

from marketplace.core.cache import MemoryCache, RedisCache, build_cache
from marketplace.core.config import CacheConfig, OrderConfig
from marketplace.core.exceptions import CacheError, NotFoundError
from marketplace.models.order import OrderLine, OrderRequest
from marketplace.services.order_service import OrderService, order_cache_key


class TestMemoryCache:
    def test_value_expires_after_ttl(self, clock):
        cache = MemoryCache(default_ttl_seconds=60, clock=clock)
        cache.set("order:1", {"id": 1})

        clock.advance(59)
        assert cache.get("order:1") == {"id": 1}

        clock.advance(1)
        assert cache.get("order:1") is None

    def test_expired_entries_are_evicted_lazily(self, clock):
        cache = MemoryCache(default_ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2, ttl_seconds=100)

        clock.advance(20)
        assert cache.entry_count() == 2

        assert cache.get("a") is None
        assert cache.entry_count() == 1
        assert cache.get("b") == 2

    def test_last_write_wins(self, clock):
        cache = MemoryCache(clock=clock)
        cache.set("k", "first")
        cache.set("k", "second")

        assert cache.get("k") == "second"

    def test_read_does_not_refresh_expiry(self, clock):
        cache = MemoryCache(default_ttl_seconds=10, clock=clock)
        cache.set("k", "v")

        clock.advance(8)
        assert cache.get("k") == "v"
        clock.advance(3)
        assert cache.get("k") is None

    def test_delete_and_prefix(self, clock):
        cache = MemoryCache(key_prefix="mkt:", clock=clock)
        cache.set("k", "v")
        assert cache.get("k") == "v"

        cache.delete("k")
        cache.delete("missing")
        assert cache.get("k") is None


class TestRedisCache:
    def setup_method(self):
        self.client = Mock()
        self.cache = RedisCache(self.client, default_ttl_seconds=3600, key_prefix="mkt:")

    def test_set_uses_setex_with_json(self):
        self.cache.set("order:5", {"id": 5, "total_amount": 21.45})

        self.client.setex.assert_called_once_with(
            "mkt:order:5", 3600, json.dumps({"id": 5, "total_amount": 21.45})
        )

    def test_get_decodes_json(self):
        self.client.get.return_value = '{"id": 5}'

        assert self.cache.get("order:5") == {"id": 5}
        self.client.get.assert_called_once_with("mkt:order:5")

    def test_miss(self):
        self.client.get.return_value = None

        assert self.cache.get("order:5") is None

    def test_backend_errors_become_cache_errors(self):
        self.client.get.side_effect = redis.ConnectionError("refused")
        self.client.setex.side_effect = redis.TimeoutError("slow")

        with pytest.raises(CacheError):
            self.cache.get("order:5")
        with pytest.raises(CacheError):
            self.cache.set("order:5", {})


class TestBuildCache:
    def test_memory_backend(self):
        cache = build_cache(CacheConfig(backend="memory", default_ttl_seconds=30, key_prefix="x:"))

        assert isinstance(cache, MemoryCache)
        assert cache.default_ttl_seconds == 30
        assert cache.key_prefix == "x:"

    def test_redis_backend(self):
        cache = build_cache(CacheConfig(backend="redis", url="redis://localhost:6399/1"))

        assert isinstance(cache, RedisCache)


def _place_order(service, listing_id):
    return service.create_orders(OrderRequest(
        buyer_id=1,
        items=[OrderLine(listing_id=listing_id, price=Decimal("10.00"), quantity=2)],
        tax_rate=Decimal("0.0725"),
    )).order_id


class TestOrderReadThroughCache:
    def test_second_read_is_served_from_cache(self, order_service, order_repository, add_listing, monkeypatch):
        order_id = _place_order(order_service, add_listing())
        calls = []
        original = order_repository.get_by_id

        def counting_get(oid):
            calls.append(oid)
            return original(oid)

        monkeypatch.setattr(order_repository, "get_by_id", counting_get)

        first = order_service.get_order(order_id)
        second = order_service.get_order(order_id)

        assert first == second
        assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)
        assert calls == [order_id]

    def test_expired_entry_is_reloaded(self, order_service, order_repository, add_listing, clock, monkeypatch):
        order_id = _place_order(order_service, add_listing())
        calls = []
        original = order_repository.get_by_id
        monkeypatch.setattr(order_repository, "get_by_id", lambda oid: calls.append(oid) or original(oid))

        order_service.get_order(order_id)
        clock.advance(3600)
        order_service.get_order(order_id)

        assert calls == [order_id, order_id]

    def test_cache_key(self, order_service, cache, add_listing):
        order_id = _place_order(order_service, add_listing())

        order_service.get_order(order_id)

        assert order_cache_key(order_id) == f"order:{order_id}"
        assert cache.get(f"order:{order_id}")["id"] == order_id

    def test_cache_outage_falls_through_to_database(self, database, order_repository, add_listing):
        broken = Mock()
        broken.get.side_effect = CacheError("down")
        broken.set.side_effect = CacheError("down")
        service = OrderService(database, order_repository, broken, OrderConfig())
        order_id = _place_order(service, add_listing())

        order = service.get_order(order_id)

        assert order["id"] == order_id
        assert order["tax_amount"] == 1.45
        broken.set.assert_called_once()

    def test_cache_outage_does_not_mask_not_found(self, database, order_repository):
        broken = Mock()
        broken.get.side_effect = CacheError("down")
        service = OrderService(database, order_repository, broken, OrderConfig())

        with pytest.raises(NotFoundError):
            service.get_order(999)
