"""
Base gateway implementing shared concerns: accounts, http, retry, logging and
callback recovery.

Concrete gateways subclass and implement the four lifecycle operations.
"""
from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from application.dtos.payments import CallbackRequest, InvoiceContext
from core.logging_config import get_logger
from core.settings import GatewayAccountSettings, PaymentMessages
from domain.payment.entity import TransactionType
from domain.payment.exceptions import GatewayAccountNotFoundException


logger = get_logger(__name__)

T = TypeVar("T")


class GatewayBase:
    name: str = "base"

    def __init__(
        self,
        *,
        accounts: Sequence[GatewayAccountSettings] = (),
        messages: Optional[PaymentMessages] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.accounts = list(accounts)
        self.messages = messages or PaymentMessages()
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def get_account(self, name: Optional[str] = None) -> GatewayAccountSettings:
        """Named account, or the first configured one when no name is given."""
        if not self.accounts:
            raise GatewayAccountNotFoundException(self.name, name or "Default")
        if not name:
            return self.accounts[0]
        for account in self.accounts:
            if account.name.lower() == name.lower():
                return account
        raise GatewayAccountNotFoundException(self.name, name)

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Retry transport failures. Only wrap calls that are safe to repeat."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    @staticmethod
    def _stored_callback(context: InvoiceContext) -> Optional[CallbackRequest]:
        """Callback parameters saved by an earlier fetch_and_store, if any."""
        transaction = context.last_transaction(TransactionType.CALLBACK)
        if transaction is None or not transaction.additional_data:
            return None
        try:
            data = json.loads(transaction.additional_data)
        except ValueError:
            logger.warning("stored_callback_unreadable", transaction_id=transaction.id)
            return None
        if not isinstance(data, dict):
            return None
        return CallbackRequest(data)

    def _callback(self, context: InvoiceContext) -> CallbackRequest:
        """Live callback request first, then the stored one, else empty."""
        if context.request:
            return context.request
        return self._stored_callback(context) or CallbackRequest()

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.name,
            **kwargs,
        )
