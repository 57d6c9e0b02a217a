"""
基于 Redis 的分布式键锁

多进程部署时串行化同一跟踪号上的操作；单进程可使用内存锁。
"""
from __future__ import annotations

import asyncio
import socket
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis import asyncio as aioredis
from redis.exceptions import LockError, RedisError

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class RedisKeyedLock:
    """分布式键锁（redis-py Lock，带过期时间防止死锁）"""

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        namespace: str = "payments",
        timeout: float = 30.0,
        blocking_timeout: float = 10.0,
    ) -> None:
        self._client = client
        self._namespace = namespace
        self._timeout = timeout
        self._blocking_timeout = blocking_timeout

    def _format_key(self, key: str) -> str:
        return f"{self._namespace}:lock:{key}"

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock_key = self._format_key(key)
        lock = self._client.lock(
            lock_key,
            timeout=self._timeout,
            blocking_timeout=self._blocking_timeout,
            thread_local=False,
        )
        acquired = await lock.acquire()
        if not acquired:
            logger.warning("lock_acquire_timeout", key=lock_key)
            raise TimeoutError(f"获取锁失败: {lock_key}")
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # 锁已过期被他人持有时释放会失败
                logger.error("lock_release_failed", key=lock_key, error=str(e))


# ============= 单例模式管理 =============

_redis_client: Optional[aioredis.Redis] = None
_init_lock = asyncio.Lock()


async def init_redis_client(url: Optional[str] = None) -> aioredis.Redis:
    """初始化全局 Redis 连接"""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    async with _init_lock:
        if _redis_client is not None:
            return _redis_client

        url = url or settings.redis.url
        if not url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis客户端")

        keepalive_opts = {}
        if hasattr(socket, "TCP_KEEPIDLE") and hasattr(socket, "TCP_KEEPINTVL") and hasattr(socket, "TCP_KEEPCNT"):
            keepalive_opts = {
                socket.TCP_KEEPIDLE: 1,
                socket.TCP_KEEPINTVL: 1,
                socket.TCP_KEEPCNT: 3,
            }

        client = aioredis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_keepalive=True,
            socket_keepalive_options=keepalive_opts,
        )
        try:
            await client.ping()
        except RedisError as e:
            logger.error("redis_init_failed", error=str(e))
            raise

        _redis_client = client
        logger.info("redis_initialized")
        return client


def get_redis_client() -> Optional[aioredis.Redis]:
    return _redis_client


async def shutdown_redis_client() -> None:
    """关闭Redis连接"""
    global _redis_client

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("redis_closed")
        except RedisError as e:
            logger.error("redis_close_failed", error=str(e))
        finally:
            _redis_client = None
