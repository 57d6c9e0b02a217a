"""
Payment token port: issues and recovers the opaque token that correlates a
gateway callback with its payment.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from application.dtos.payments import CallbackRequest, Invoice


@runtime_checkable
class PaymentTokenProvider(Protocol):
    async def provide_token(self, invoice: Invoice) -> str: ...

    async def retrieve_token(self, request: CallbackRequest) -> Optional[str]: ...
