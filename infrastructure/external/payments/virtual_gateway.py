"""
Virtual gateway for development and demos.

Sends the customer to the local virtual-gateway page, which posts the chosen
outcome back to the callback URL. No money moves.
"""
from __future__ import annotations

from decimal import Decimal

from application.dtos.payments import (
    CallbackRequest,
    Invoice,
    InvoiceContext,
    PaymentFetchResult,
    PaymentRefundResult,
    PaymentRequestResult,
    PaymentVerifyResult,
)
from infrastructure.external.payments.base import GatewayBase


def format_amount(amount: Decimal) -> str:
    """Plain decimal text without exponent or trailing zeros: 10000, 12.5"""
    return format(Decimal(amount).normalize(), "f")


class VirtualGateway(GatewayBase):
    name = "ParbadVirtual"

    def __init__(self, *, base_url: str, gateway_path: str = "/api/v1/virtual-gateway", **kwargs) -> None:
        super().__init__(**kwargs)
        self.url = f"{base_url.rstrip('/')}{gateway_path}"

    async def request(self, invoice: Invoice) -> PaymentRequestResult:
        account = self.get_account(invoice.gateway_account_name)
        self._log("virtual_request", tracking_number=invoice.tracking_number)
        return PaymentRequestResult.succeed_with_post(
            self.url,
            {
                "CommandType": "request",
                "trackingNumber": str(invoice.tracking_number),
                "amount": format_amount(invoice.amount),
                "redirectUrl": invoice.callback_url,
            },
            account_name=account.name,
        )

    def _callback_result(self, context: InvoiceContext) -> tuple[bool, str, CallbackRequest]:
        callback = self._callback(context)
        is_succeed = (callback.get("result") or "").lower() == "true"
        message = self.messages.payment_succeed if is_succeed else self.messages.payment_failed
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
        transaction_code = callback.get("TransactionCode")
        self._log("virtual_verified", tracking_number=context.payment.tracking_number)
        return PaymentVerifyResult.succeed(transaction_code, message=self.messages.payment_succeed)

    async def refund(self, context: InvoiceContext, amount: Decimal) -> PaymentRefundResult:
        self._log("virtual_refund", tracking_number=context.payment.tracking_number, amount=str(amount))
        return PaymentRefundResult.succeed()
