"""
Factory assembling the gateway registry from settings at startup.
"""
from __future__ import annotations

from typing import Optional

import httpx

from application.services.gateway_registry import GatewayRegistry
from core.config import settings
from core.settings import PaymentSettings, payment_settings
from core.logging_config import get_logger


logger = get_logger(__name__)


def build_gateway_registry(
    config: Optional[PaymentSettings] = None,
    *,
    base_url: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GatewayRegistry:
    config = config or payment_settings
    common = {
        "messages": config.messages,
        "timeouts": config.timeouts.model_dump(),
        "retry": {"max": config.retry.max, "base": config.retry.base_backoff},
        "transport": transport,
    }
    registry = GatewayRegistry()

    if config.virtual.enabled:
        from .virtual_gateway import VirtualGateway
        registry.register(VirtualGateway(
            base_url=base_url or settings.PUBLIC_BASE_URL,
            gateway_path=config.virtual.gateway_path,
            accounts=config.virtual.accounts,
            **common,
        ))
    if config.idpay.enabled:
        from .idpay_client import IdPayGateway
        registry.register(IdPayGateway(
            api_request_url=config.idpay.api_request_url,
            api_verification_url=config.idpay.api_verification_url,
            accounts=config.idpay.accounts,
            **common,
        ))

    logger.info("gateway_registry_built", gateways=registry.names())
    return registry
