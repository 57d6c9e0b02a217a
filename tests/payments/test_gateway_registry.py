import pytest

from application.services.gateway_registry import GatewayRegistry
from core.settings import GatewayAccountSettings, PaymentSettings
from domain.payment.exceptions import GatewayNotRegisteredException
from infrastructure.external.payments import build_gateway_registry
from infrastructure.external.payments.virtual_gateway import VirtualGateway


def test_get_is_case_insensitive(stub_gateway):
    registry = GatewayRegistry([stub_gateway])
    assert registry.get("stub") is stub_gateway
    assert registry.get("STUB") is stub_gateway
    assert "Stub" in registry
    assert registry.names() == ["Stub"]


def test_unknown_name_raises_typed_error():
    registry = GatewayRegistry()
    with pytest.raises(GatewayNotRegisteredException) as exc_info:
        registry.get("Missing")
    assert exc_info.value.details == {"gateway": "Missing"}


def test_duplicate_registration_is_rejected(make_stub_gateway):
    registry = GatewayRegistry([make_stub_gateway()])
    with pytest.raises(ValueError):
        registry.register(make_stub_gateway())


def test_objects_without_gateway_protocol_are_rejected():
    class NotAGateway:
        name = "Broken"

    with pytest.raises(TypeError):
        GatewayRegistry([NotAGateway()])


def test_build_gateway_registry_from_settings():
    config = PaymentSettings(
        idpay={"enabled": True, "accounts": [GatewayAccountSettings(api_key="key")]},
    )
    registry = build_gateway_registry(config, base_url="http://shop.test")

    assert sorted(registry.names()) == ["IdPay", "ParbadVirtual"]
    virtual = registry.get("parbadvirtual")
    assert isinstance(virtual, VirtualGateway)
    assert virtual.url == "http://shop.test/api/v1/virtual-gateway"


def test_disabled_gateways_are_not_registered():
    config = PaymentSettings(virtual={"enabled": False})
    registry = build_gateway_registry(config)
    assert len(registry) == 0
