"""Tests for Redis caching of directory lookups."""

from unittest.mock import AsyncMock

import pytest

from clinicflow.core.redis_client import CacheManager
from clinicflow.services.directory_service import DirectoryService


@pytest.mark.asyncio
async def test_cache_manager_get_json():
    """Test CacheManager get_json method."""
    mock_redis = AsyncMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    # Cache miss
    mock_redis.get.return_value = None
    assert await cache_manager.get_json("test_key") is None
    mock_redis.get.assert_awaited_once_with("test_key")

    # Cache hit
    mock_redis.reset_mock()
    mock_redis.get.return_value = '{"name": "Test", "value": 123}'
    assert await cache_manager.get_json("test_key") == {"name": "Test", "value": 123}


@pytest.mark.asyncio
async def test_cache_manager_set_json():
    """Test CacheManager set_json method."""
    mock_redis = AsyncMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    assert await cache_manager.set_json("test_key", {"value": 1}) is True
    mock_redis.set.assert_awaited_once()

    mock_redis.reset_mock()
    assert await cache_manager.set_json("test_key", {"value": 1}, ttl=300) is True
    mock_redis.setex.assert_awaited_once_with("test_key", 300, '{"value": 1}')


@pytest.mark.asyncio
async def test_cache_failures_degrade_to_miss():
    mock_redis = AsyncMock()
    mock_redis.get.side_effect = ConnectionError("redis down")
    mock_redis.setex.side_effect = ConnectionError("redis down")
    cache_manager = CacheManager(redis_client=mock_redis)

    assert await cache_manager.get_json("test_key") is None
    assert await cache_manager.set_json("test_key", {"value": 1}, ttl=60) is False


@pytest.mark.asyncio
async def test_doctor_lookup_is_cached(db_session, directory_data):
    mock_redis = AsyncMock()
    mock_redis.get.return_value = None
    service = DirectoryService(db_session, CacheManager(mock_redis))

    doctor = await service.get_doctor("doc_cardio_1")

    assert doctor["full_name"] == "Dr. Asha Rao"
    mock_redis.get.assert_awaited_once_with("doctor:doc_cardio_1")
    key, ttl, _ = mock_redis.setex.await_args.args
    assert key == "doctor:doc_cardio_1"
    assert ttl == 900


@pytest.mark.asyncio
async def test_cached_doctor_skips_database(db_session):
    mock_redis = AsyncMock()
    mock_redis.get.return_value = '{"id": "doc_cached", "full_name": "Dr. Cached"}'
    service = DirectoryService(db_session, CacheManager(mock_redis))

    # The doctor only exists in the cache
    doctor = await service.get_doctor("doc_cached")

    assert doctor == {"id": "doc_cached", "full_name": "Dr. Cached"}
    mock_redis.setex.assert_not_awaited()


@pytest.mark.asyncio
async def test_alternative_doctors_cached_per_specialization(db_session, directory_data):
    mock_redis = AsyncMock()
    mock_redis.get.return_value = None
    service = DirectoryService(db_session, CacheManager(mock_redis))

    rows = await service.find_doctors_by_specialization("Cardiology", exclude_doctor_id="doc_cardio_1")

    assert [row["id"] for row in rows] == ["doc_cardio_2"]
    mock_redis.get.assert_awaited_once_with("doctor:alternatives:cardiology:doc_cardio_1:3")
    mock_redis.setex.assert_awaited_once()


@pytest.mark.asyncio
async def test_alternative_doctors_cache_key_includes_limit(db_session, directory_data):
    mock_redis = AsyncMock()
    mock_redis.get.return_value = None
    service = DirectoryService(db_session, CacheManager(mock_redis))

    await service.find_doctors_by_specialization("Cardiology", limit=1)
    await service.find_doctors_by_specialization("Cardiology", limit=5)

    keys = [call.args[0] for call in mock_redis.get.await_args_list]
    assert keys == ["doctor:alternatives:cardiology:-:1", "doctor:alternatives:cardiology:-:5"]
