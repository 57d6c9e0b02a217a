"""
Startup-time registry mapping gateway names to gateway instances.
"""
from __future__ import annotations

from typing import Iterable, Iterator

from application.ports.payment_gateway import PaymentGateway
from domain.payment.exceptions import GatewayNotRegisteredException


class GatewayRegistry:
    """Name lookup is case-insensitive; the gateway's own ``name`` is canonical."""

    def __init__(self, gateways: Iterable[PaymentGateway] = ()) -> None:
        self._gateways: dict[str, PaymentGateway] = {}
        for gateway in gateways:
            self.register(gateway)

    def register(self, gateway: PaymentGateway) -> None:
        if not isinstance(gateway, PaymentGateway):
            raise TypeError(f"{type(gateway).__name__} does not implement the PaymentGateway protocol")
        key = gateway.name.lower()
        if key in self._gateways:
            raise ValueError(f"Gateway '{gateway.name}' is already registered")
        self._gateways[key] = gateway

    def get(self, name: str) -> PaymentGateway:
        gateway = self._gateways.get((name or "").lower())
        if gateway is None:
            raise GatewayNotRegisteredException(name)
        return gateway

    def names(self) -> list[str]:
        return [g.name for g in self._gateways.values()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._gateways

    def __iter__(self) -> Iterator[PaymentGateway]:
        return iter(self._gateways.values())

    def __len__(self) -> int:
        return len(self._gateways)
