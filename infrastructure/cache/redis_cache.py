"""Redis缓存实现（限流计数与 webhook 去重）"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from redis import asyncio as aioredis

from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


def _json_dumps(value: Any) -> str:
    """将任意对象序列化为JSON字符串"""
    return json.dumps(value, default=str)


class RedisCache:
    """基于Redis的简单缓存实现"""

    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    async def set_if_absent(self, key: str, value: Any, ttl: int) -> bool:
        """SET NX EX；键已存在返回 False"""
        created = await self._client.set(self._format_key(key), _json_dumps(value), ex=ttl, nx=True)
        return bool(created)

    async def delete(self, key: str) -> bool:
        return bool(await self._client.delete(self._format_key(key)))

    async def incr_window(self, key: str, window_seconds: int) -> tuple[int, int]:
        """
        固定窗口计数：首次写入时设置过期
        返回 (当前计数, 剩余秒数)
        """
        formatted_key = self._format_key(key)
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.incr(formatted_key)
            pipe.ttl(formatted_key)
            count, ttl = await pipe.execute()
        if ttl is None or ttl < 0:
            await self._client.expire(formatted_key, window_seconds)
            ttl = window_seconds
        return int(count), int(ttl)


_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisCache] = None
_lock = asyncio.Lock()


async def init_redis_cache(namespace: Optional[str] = None) -> Optional[RedisCache]:
    """初始化Redis缓存实例；未配置 redis.url 时返回 None"""
    global _redis_client, _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        if not settings.redis.url:
            logger.info("redis_cache_disabled", reason="redis url not configured")
            return None

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
        )

        _redis_client = client
        _cache_instance = RedisCache(
            client=client,
            namespace=namespace or settings.redis.namespace,
        )
        logger.info("redis_cache_initialized", namespace=namespace or settings.redis.namespace)
        return _cache_instance


def get_redis_cache() -> Optional[RedisCache]:
    """获取全局Redis缓存实例（可能为 None）"""
    return _cache_instance


async def shutdown_redis_cache() -> None:
    """关闭Redis连接"""
    global _redis_client, _cache_instance

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        _cache_instance = None
