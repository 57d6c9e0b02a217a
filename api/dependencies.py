"""
API依赖项 - 组装支付编排服务

测试中可通过 app.dependency_overrides 替换 get_payment_orchestrator。
"""
from functools import lru_cache

from application.ports.locks import KeyedLock
from application.services.gateway_registry import GatewayRegistry
from application.services.payment_orchestrator import PaymentOrchestrator
from application.utils.locks import InMemoryKeyedLock
from core.config import settings
from core.settings import payment_settings
from domain.payment.repository import PaymentStorage
from infrastructure.database import AsyncSessionLocal
from infrastructure.external.payments import build_gateway_registry
from infrastructure.locks.redis_lock import RedisKeyedLock, get_redis_client
from infrastructure.repositories.payment_repository import SQLAlchemyPaymentStorage
from infrastructure.tokens import QueryStringPaymentTokenProvider


@lru_cache
def get_gateway_registry() -> GatewayRegistry:
    return build_gateway_registry()


@lru_cache
def _memory_lock() -> InMemoryKeyedLock:
    return InMemoryKeyedLock()


def get_keyed_lock() -> KeyedLock:
    if payment_settings.lock.backend == "redis":
        client = get_redis_client()
        if client is None:
            raise RuntimeError("Redis lock backend selected but REDIS__URL is not initialized")
        return RedisKeyedLock(
            client,
            namespace=settings.redis.namespace,
            timeout=payment_settings.lock.timeout_seconds,
            blocking_timeout=payment_settings.lock.blocking_timeout_seconds,
        )
    return _memory_lock()


def get_payment_storage() -> PaymentStorage:
    return SQLAlchemyPaymentStorage(AsyncSessionLocal)


def get_payment_orchestrator() -> PaymentOrchestrator:
    return PaymentOrchestrator(
        storage=get_payment_storage(),
        token_provider=QueryStringPaymentTokenProvider(payment_settings.token.query_name),
        gateways=get_gateway_registry(),
        messages=payment_settings.messages,
        locks=get_keyed_lock(),
        enforce_cumulative_refund_limit=payment_settings.refund.enforce_cumulative_limit,
    )
