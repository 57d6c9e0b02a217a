"""
IdPay adapter (JSON REST API).

Flow: POST the invoice to the request endpoint and redirect the customer to
the returned ``link``; IdPay calls back with ``status``/``id``/``order_id``/
``track_id``; verification posts ``{id, order_id}`` and expects status 100.
Amounts are sent as integer Rials.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any

import httpx

from application.dtos.payments import (
    CallbackRequest,
    Invoice,
    InvoiceContext,
    PaymentFetchResult,
    PaymentRefundResult,
    PaymentRequestResult,
    PaymentVerifyResult,
)
from core.settings import GatewayAccountSettings
from infrastructure.external.payments.base import GatewayBase
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError


CALLBACK_STATUS_SUCCEED = "10"
VERIFY_STATUS_SUCCEED = 100


class IdPayGateway(GatewayBase):
    name = "IdPay"

    def __init__(
        self,
        *,
        api_request_url: str = "https://api.idpay.ir/v1.1/payment",
        api_verification_url: str = "https://api.idpay.ir/v1.1/payment/verify",
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.api_request_url = api_request_url
        self.api_verification_url = api_verification_url

    @staticmethod
    def _headers(account: GatewayAccountSettings) -> dict[str, str]:
        return {
            "X-API-KEY": account.api_key or "",
            "X-SANDBOX": "1" if account.is_test_account else "0",
        }

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise PaymentProviderError(
                self.messages.invalid_data_received_from_gateway,
                provider=self.name,
                details={"status_code": response.status_code},
            ) from e
        if not isinstance(data, dict):
            raise PaymentProviderError(
                self.messages.invalid_data_received_from_gateway,
                provider=self.name,
                details={"status_code": response.status_code},
            )
        return data

    @staticmethod
    def _error_message(data: dict[str, Any], default: str) -> str:
        message = data.get("error_message")
        code = data.get("error_code")
        if message and code is not None:
            return f"{message} (code: {code})"
        return message or default

    async def request(self, invoice: Invoice) -> PaymentRequestResult:
        account = self.get_account(invoice.gateway_account_name)
        payload = {
            "order_id": str(invoice.tracking_number),
            "amount": int(invoice.amount),
            "callback": invoice.callback_url,
        }
        # Creating a payment is not idempotent at IdPay: no retry
        response = await self.client.post(self.api_request_url, json=payload, headers=self._headers(account))
        data = self._json(response)
        self._log(
            "idpay_request_response",
            tracking_number=invoice.tracking_number,
            status_code=response.status_code,
        )

        if response.is_success and data.get("link"):
            return PaymentRequestResult.succeed_with_redirect(
                str(data["link"]),
                account_name=account.name,
                additional_data={"id": data.get("id")},
            )
        return PaymentRequestResult.failed(
            self._error_message(data, self.messages.payment_failed),
            account_name=account.name,
        )

    def _callback_result(self, context: InvoiceContext) -> tuple[bool, str, CallbackRequest]:
        callback = self._callback(context)
        status = callback.get("status")
        order_id = callback.get("order_id")
        is_succeed = (
            status == CALLBACK_STATUS_SUCCEED
            and order_id == str(context.payment.tracking_number)
        )
        message = self.messages.payment_succeed if is_succeed else self.messages.payment_failed
        if status and status != CALLBACK_STATUS_SUCCEED:
            message = f"{message} (status: {status})"
        return is_succeed, message, callback

    async def fetch(self, context: InvoiceContext) -> PaymentFetchResult:
        is_succeed, message, callback = self._callback_result(context)
        if is_succeed:
            return PaymentFetchResult.ready_for_verifying(callback_result=callback.params)
        return PaymentFetchResult.failed(message, callback_result=callback.params)

    async def verify(self, context: InvoiceContext) -> PaymentVerifyResult:
        is_succeed, message, callback = self._callback_result(context)
        if not is_succeed:
            return PaymentVerifyResult.failed(message)

        account = self.get_account(context.payment.gateway_account_name)
        payload = {
            "id": callback.get("id", ""),
            "order_id": str(context.payment.tracking_number),
        }

        async def _call() -> httpx.Response:
            return await self.client.post(self.api_verification_url, json=payload, headers=self._headers(account))

        response = await self._retry(_call)
        if response.status_code >= 500:
            # Payment stays open so verification can be retried
            raise PaymentRecoverableError(
                f"IdPay verification unavailable (HTTP {response.status_code})",
                provider=self.name,
                provider_code=str(response.status_code),
            )
        data = self._json(response)
        self._log(
            "idpay_verify_response",
            tracking_number=context.payment.tracking_number,
            status_code=response.status_code,
            status=data.get("status"),
        )

        if response.is_success and _as_int(data.get("status")) == VERIFY_STATUS_SUCCEED:
            return PaymentVerifyResult.succeed(
                str(data.get("track_id")) if data.get("track_id") is not None else None,
                message=self.messages.payment_succeed,
                additional_data={"id": data.get("id")},
            )
        return PaymentVerifyResult.failed(self._error_message(data, self.messages.payment_failed))

    async def refund(self, context: InvoiceContext, amount: Decimal) -> PaymentRefundResult:
        return PaymentRefundResult.failed(self.messages.refund_not_supported)


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
