import json
import uuid
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from studio_booking_engine.cache import CacheInvalidator, CacheKeyBuilder, RedisCache


@pytest.fixture
def connected_cache():
    redis_cache = RedisCache()
    redis_cache.client = AsyncMock()
    return redis_cache


@pytest.mark.asyncio
async def test_uninitialized_cache_is_a_noop():
    redis_cache = RedisCache()

    assert await redis_cache.get("any") is None
    assert await redis_cache.set("any", {"a": 1}) is False
    assert await redis_cache.delete("any") is False


@pytest.mark.asyncio
async def test_set_and_get_json(connected_cache):
    connected_cache.client.get.return_value = json.dumps({"available_seats": 3}).encode("utf-8")

    assert await connected_cache.set("key", {"available_seats": 3}, ttl=60)
    assert await connected_cache.get("key") == {"available_seats": 3}
    connected_cache.client.setex.assert_awaited_once_with("key", 60, '{"available_seats": 3}')


@pytest.mark.asyncio
async def test_redis_errors_degrade(connected_cache):
    connected_cache.client.get.side_effect = RedisConnectionError("gone")
    connected_cache.client.delete.side_effect = RedisConnectionError("gone")

    assert await connected_cache.get("key") is None
    assert await connected_cache.delete("key") is False


@pytest.mark.asyncio
async def test_invalidate_class_caches(connected_cache):
    class_instance_id = str(uuid.uuid4())

    await CacheInvalidator(connected_cache).invalidate_class_caches(class_instance_id)

    connected_cache.client.delete.assert_awaited_once_with(CacheKeyBuilder.class_availability(class_instance_id))


@pytest.mark.asyncio
async def test_availability_served_from_cache(service, cache, make_class):
    class_instance = await make_class(capacity=4)
    stored = {}

    async def fake_set(key, value, ttl=None):
        stored[key] = value
        return True

    async def fake_get(key):
        return stored.get(key)

    cache.set = fake_set
    cache.get = fake_get

    first = await service.get_availability(class_instance.id)
    stored[CacheKeyBuilder.class_availability(str(class_instance.id))]["available_seats"] = 1
    second = await service.get_availability(class_instance.id)

    assert first.available_seats == 4
    assert second.available_seats == 1
