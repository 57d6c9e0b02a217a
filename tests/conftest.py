"""Pytest bootstrap configuration.

Point settings at throwaway resources before any application module is
imported, and provide in-memory wiring for the payment orchestrator.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PUBLIC_BASE_URL", "http://test")

from collections import Counter  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402

from application.dtos.payments import (  # noqa: E402
    PaymentFetchResult,
    PaymentRefundResult,
    PaymentRequestResult,
    PaymentVerifyResult,
)
from application.services.gateway_registry import GatewayRegistry  # noqa: E402
from application.services.payment_orchestrator import PaymentOrchestrator  # noqa: E402
from infrastructure.repositories.memory_payment_storage import InMemoryPaymentStorage  # noqa: E402
from infrastructure.tokens import QueryStringPaymentTokenProvider  # noqa: E402


class StubGateway:
    """Configurable gateway double that counts calls."""

    name = "Stub"

    def __init__(self, *, verify_succeeds: bool = True, request_error: Exception | None = None):
        self.verify_succeeds = verify_succeeds
        self.request_error = request_error
        self.calls = Counter()
        self.refunded: list[Decimal] = []

    async def request(self, invoice):
        self.calls["request"] += 1
        if self.request_error is not None:
            raise self.request_error
        return PaymentRequestResult.succeed_with_redirect("https://stub.example/pay", account_name="Default")

    async def fetch(self, context):
        self.calls["fetch"] += 1
        return PaymentFetchResult.ready_for_verifying(callback_result={"ok": "1"})

    async def verify(self, context):
        self.calls["verify"] += 1
        if self.verify_succeeds:
            return PaymentVerifyResult.succeed("TX-1", message="Payment was successful.")
        return PaymentVerifyResult.failed("Declined")

    async def refund(self, context, amount):
        self.calls["refund"] += 1
        self.refunded.append(amount)
        return PaymentRefundResult.succeed()


class RecordingLogger:
    """Minimal structlog-like logger capturing event names."""

    def __init__(self):
        self.events: list[tuple[str, str, dict]] = []

    def bind(self, **kwargs):
        return self

    def _record(self, level, event, **kwargs):
        self.events.append((level, event, kwargs))

    def info(self, event, **kwargs):
        self._record("info", event, **kwargs)

    def warning(self, event, **kwargs):
        self._record("warning", event, **kwargs)

    def error(self, event, **kwargs):
        self._record("error", event, **kwargs)

    def names(self) -> list[str]:
        return [event for _, event, _ in self.events]


@pytest.fixture
def storage():
    return InMemoryPaymentStorage()


@pytest.fixture
def stub_gateway():
    return StubGateway()


@pytest.fixture
def token_provider():
    return QueryStringPaymentTokenProvider()


@pytest.fixture
def orchestrator(storage, stub_gateway, token_provider):
    return PaymentOrchestrator(
        storage=storage,
        token_provider=token_provider,
        gateways=GatewayRegistry([stub_gateway]),
    )


@pytest.fixture
def make_stub_gateway():
    return StubGateway


@pytest.fixture
def recording_logger():
    return RecordingLogger()
