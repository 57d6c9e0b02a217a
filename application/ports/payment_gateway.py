"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Protocol, runtime_checkable

from application.dtos.payments import (
    Invoice,
    InvoiceContext,
    PaymentRequestResult,
    PaymentFetchResult,
    PaymentVerifyResult,
    PaymentRefundResult,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers.

    Implementations should be async and side-effect free beyond IO.
    Returning None from any method is a contract violation.
    """

    name: str

    async def request(self, invoice: Invoice) -> PaymentRequestResult: ...

    async def fetch(self, context: InvoiceContext) -> PaymentFetchResult: ...

    async def verify(self, context: InvoiceContext) -> PaymentVerifyResult: ...

    async def refund(self, context: InvoiceContext, amount: Decimal) -> PaymentRefundResult: ...
