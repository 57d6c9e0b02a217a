"""
Application service orchestrating the payment lifecycle.

Drives a payment through request -> fetch (callback) -> verify, plus cancel and
refund, against whichever gateway the invoice names. Storage, token provider,
gateway registry and locks are injected from the composition root (API/tests),
keeping dependencies one-way.

Idempotency rules:
- a tracking number creates at most one payment (storage uniqueness + lock);
- verify/cancel complete a payment exactly once, later calls only report;
- operations on one tracking number are serialized through ``KeyedLock``.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, TypeVar

from application.dtos.payments import (
    CallbackRequest,
    Invoice,
    InvoiceContext,
    PaymentCancelResult,
    PaymentFetchResult,
    PaymentFetchResultStatus,
    PaymentRefundResult,
    PaymentRefundResultStatus,
    PaymentRequestResult,
    PaymentRequestResultStatus,
    PaymentResult,
    PaymentVerifyResult,
    PaymentVerifyResultStatus,
    RefundInvoice,
)
from application.ports.locks import KeyedLock
from application.ports.payment_token import PaymentTokenProvider
from application.services.gateway_registry import GatewayRegistry
from application.utils.locks import InMemoryKeyedLock
from core.logging_config import get_logger
from core.settings import PaymentMessages
from domain.payment.entity import Payment, Transaction, TransactionType
from domain.payment.exceptions import (
    GatewayContractError,
    InvoiceNotFoundException,
    PaymentAlreadyExistsException,
    PaymentTokenAlreadyExistsException,
    PaymentTokenProviderException,
)
from domain.payment.repository import PaymentStorage


R = TypeVar("R", bound=PaymentResult)


def _lock_key(tracking_number: int) -> str:
    return f"payment:{tracking_number}"


def _to_json(data: Any) -> Optional[str]:
    if data is None:
        return None
    return json.dumps(data, ensure_ascii=False, default=str)


class PaymentOrchestrator:
    def __init__(
        self,
        storage: PaymentStorage,
        token_provider: PaymentTokenProvider,
        gateways: GatewayRegistry,
        *,
        messages: Optional[PaymentMessages] = None,
        locks: Optional[KeyedLock] = None,
        enforce_cumulative_refund_limit: bool = True,
        logger=None,
    ) -> None:
        self.storage = storage
        self.token_provider = token_provider
        self.gateways = gateways
        self.messages = messages or PaymentMessages()
        self.locks = locks or InMemoryKeyedLock()
        self.enforce_cumulative_refund_limit = enforce_cumulative_refund_limit
        self.logger = logger or get_logger(__name__)

    # ----------------------------------------------------------------- request

    async def request(self, invoice: Invoice) -> PaymentRequestResult:
        log = self.logger.bind(tracking_number=invoice.tracking_number, gateway=invoice.gateway_name)
        log.info("payment_request_started", amount=str(invoice.amount))

        async with self.locks.hold(_lock_key(invoice.tracking_number)):
            if await self.storage.exists_by_tracking_number(invoice.tracking_number):
                log.info("payment_request_duplicate_tracking_number")
                return self._duplicate_tracking_number(invoice)

            gateway = self.gateways.get(invoice.gateway_name)

            token = await self.token_provider.provide_token(invoice)
            if not token:
                raise PaymentTokenProviderException(
                    f"The payment token provider '{type(self.token_provider).__name__}' didn't provide any token."
                )
            if await self.storage.exists_by_token(token):
                log.error("payment_request_token_exists", token=token)
                raise PaymentTokenProviderException(
                    f"Requesting the invoice {invoice.tracking_number} is finished. "
                    f"The payment token \"{token}\" already exists."
                )

            now = datetime.now(timezone.utc)
            payment = Payment(
                id=None,
                tracking_number=invoice.tracking_number,
                amount=invoice.amount,
                token=token,
                gateway_name=gateway.name,
                created_at=now,
                updated_at=now,
            )
            try:
                payment = await self.storage.create(payment)
            except PaymentAlreadyExistsException:
                log.info("payment_request_duplicate_tracking_number", source="storage")
                return self._duplicate_tracking_number(invoice)
            except PaymentTokenAlreadyExistsException as exc:
                log.error("payment_request_token_exists", token=token, source="storage")
                raise PaymentTokenProviderException(exc.message) from exc

            try:
                result = await gateway.request(invoice)
            except Exception as exc:
                # A failed request attempt moved no money: the payment is final.
                log.error("payment_request_gateway_error", error=str(exc), exc_info=True)
                payment.mark_completed(is_paid=False)
                result = PaymentRequestResult.failed(str(exc))

            if result is None:
                raise GatewayContractError(gateway.name, "request")

            result.tracking_number = invoice.tracking_number
            result.amount = invoice.amount
            result.gateway_name = gateway.name

            payment.gateway_account_name = result.gateway_account_name
            payment.updated_at = datetime.now(timezone.utc)
            payment = await self.storage.update(payment)

            await self.storage.create_transaction(Transaction(
                id=None,
                payment_id=payment.id,
                type=TransactionType.REQUEST,
                amount=invoice.amount,
                is_succeed=result.is_succeed,
                message=result.message,
                additional_data=result.model_dump_json(),
            ))

        log.info("payment_request_finished", status=result.status.value)
        return result

    # ------------------------------------------------------------------- fetch

    async def fetch(self, tracking_number: int, request: Optional[CallbackRequest] = None) -> PaymentFetchResult:
        """Ask the gateway whether the payment can be verified. Never mutates state."""
        log = self.logger.bind(tracking_number=tracking_number)
        log.info("payment_fetch_started")

        payment = await self._get_payment(tracking_number, log, "payment_fetch_not_found")
        result, _ = await self._fetch(payment, request, log)
        return result

    async def fetch_and_store(self, request: CallbackRequest) -> PaymentFetchResult:
        """Resolve the payment from a gateway callback and record the callback verdict."""
        log = self.logger.bind(source="callback")
        log.info("payment_fetch_started")

        token = await self.token_provider.retrieve_token(request)
        if not token:
            log.error("payment_fetch_no_token")
            raise PaymentTokenProviderException("No Token is received.")

        payment = await self.storage.get_by_token(token)
        if payment is None:
            log.error("payment_fetch_not_found", token=token)
            raise InvoiceNotFoundException(token)

        log = log.bind(tracking_number=payment.tracking_number)
        result, consulted = await self._fetch(payment, request, log)

        if consulted:
            await self.storage.create_transaction(Transaction(
                id=None,
                payment_id=payment.id,
                type=TransactionType.CALLBACK,
                amount=payment.amount,
                is_succeed=result.is_succeed,
                message=result.message,
                additional_data=_to_json(result.callback_result),
            ))
        return result

    async def _fetch(
        self,
        payment: Payment,
        request: Optional[CallbackRequest],
        log,
    ) -> tuple[PaymentFetchResult, bool]:
        if payment.is_completed:
            log.info("payment_fetch_already_processed")
            result = PaymentFetchResult(
                status=PaymentFetchResultStatus.ALREADY_PROCESSED,
                message=self.messages.payment_is_already_processed_before,
                is_already_verified=payment.is_paid,
            )
            return self._decorate(result, payment), False

        gateway = self.gateways.get(payment.gateway_name)
        context = await self._context(payment, request)

        try:
            gateway_result = await gateway.fetch(context)
        except Exception as exc:
            log.error("payment_fetch_gateway_error", error=str(exc), exc_info=True)
            raise

        if gateway_result is None:
            raise GatewayContractError(gateway.name, "fetch")

        message = None
        if gateway_result.status != PaymentFetchResultStatus.READY_FOR_VERIFYING:
            message = gateway_result.message or self.messages.payment_failed

        result = PaymentFetchResult(
            status=gateway_result.status,
            message=message,
            callback_result=gateway_result.callback_result,
            additional_data=gateway_result.additional_data,
            is_already_verified=payment.is_paid,
        )
        log.info("payment_fetch_finished", status=result.status.value)
        return self._decorate(result, payment), True

    # ------------------------------------------------------------------ verify

    async def verify(self, tracking_number: int, request: Optional[CallbackRequest] = None) -> PaymentVerifyResult:
        log = self.logger.bind(tracking_number=tracking_number)
        log.info("payment_verify_started")

        async with self.locks.hold(_lock_key(tracking_number)):
            payment = await self._get_payment(tracking_number, log, "payment_verify_not_found")

            if payment.is_completed:
                log.info("payment_verify_already_processed", is_paid=payment.is_paid)
                result = PaymentVerifyResult(
                    status=(
                        PaymentVerifyResultStatus.ALREADY_VERIFIED
                        if payment.is_paid
                        else PaymentVerifyResultStatus.FAILED
                    ),
                    transaction_code=payment.transaction_code,
                    message=self.messages.payment_is_already_processed_before,
                )
                return self._decorate(result, payment)

            gateway = self.gateways.get(payment.gateway_name)
            context = await self._context(payment, request)

            # Not converted into a failure: money may have moved at the provider.
            try:
                result = await gateway.verify(context)
            except Exception as exc:
                log.error("payment_verify_gateway_error", error=str(exc), exc_info=True)
                raise

            if result is None:
                raise GatewayContractError(gateway.name, "verify")

            self._decorate(result, payment)

            payment.mark_completed(is_paid=result.is_succeed, transaction_code=result.transaction_code)
            payment = await self.storage.update(payment)

            await self.storage.create_transaction(Transaction(
                id=None,
                payment_id=payment.id,
                type=TransactionType.VERIFY,
                amount=payment.amount,
                is_succeed=result.is_succeed,
                message=result.message,
                additional_data=result.model_dump_json(),
            ))

        log.info("payment_verify_finished", status=result.status.value, transaction_code=result.transaction_code)
        return result

    # ------------------------------------------------------------------ cancel

    async def cancel(self, tracking_number: int, reason: Optional[str] = None) -> PaymentCancelResult:
        log = self.logger.bind(tracking_number=tracking_number)
        log.info("payment_cancel_started")

        async with self.locks.hold(_lock_key(tracking_number)):
            payment = await self._get_payment(tracking_number, log, "payment_cancel_not_found")

            if payment.is_completed:
                log.info("payment_cancel_already_processed")
                return self._decorate(
                    PaymentCancelResult(is_succeed=False, message=self.messages.payment_is_already_processed_before),
                    payment,
                )

            message = reason or self.messages.payment_canceled_programmatically

            payment.mark_completed(is_paid=False)
            payment = await self.storage.update(payment)

            await self.storage.create_transaction(Transaction(
                id=None,
                payment_id=payment.id,
                type=TransactionType.CANCELED,
                amount=payment.amount,
                is_succeed=False,
                message=message,
            ))

        log.info("payment_cancel_finished", reason=message)
        return self._decorate(PaymentCancelResult(is_succeed=True, message=message), payment)

    # ------------------------------------------------------------------ refund

    async def refund(self, invoice: RefundInvoice) -> PaymentRefundResult:
        log = self.logger.bind(tracking_number=invoice.tracking_number)
        log.info("payment_refund_started", amount=str(invoice.amount))

        async with self.locks.hold(_lock_key(invoice.tracking_number)):
            payment = await self._get_payment(invoice.tracking_number, log, "payment_refund_not_found")

            if not payment.is_completed:
                message = (
                    f"{self.messages.only_completed_payment_can_be_refunded} "
                    f"Tracking number: {invoice.tracking_number}."
                )
                log.info("payment_refund_not_completed")
                return self._decorate(PaymentRefundResult.failed(message), payment)

            amount = payment.amount if invoice.amount == 0 else Decimal(invoice.amount)
            if amount > payment.amount:
                log.warning("payment_refund_amount_exceeds", requested=str(amount), paid=str(payment.amount))
                return self._amount_exceeds(payment, amount)

            transactions = await self.storage.list_transactions(payment.id)

            if self.enforce_cumulative_refund_limit:
                refunded = sum(
                    (t.amount for t in transactions if t.type == TransactionType.REFUND and t.is_succeed),
                    Decimal("0"),
                )
                if refunded + amount > payment.amount:
                    log.warning(
                        "payment_refund_cumulative_exceeds",
                        requested=str(amount),
                        refunded=str(refunded),
                        paid=str(payment.amount),
                    )
                    result = self._amount_exceeds(payment, amount)
                    result.additional_data["refunded_amount"] = str(refunded)
                    return result

            gateway = self.gateways.get(payment.gateway_name)
            context = InvoiceContext(payment=payment, transactions=tuple(transactions))

            try:
                result = await gateway.refund(context, amount)
            except Exception as exc:
                log.error("payment_refund_gateway_error", error=str(exc), exc_info=True)
                raise

            if result is None:
                raise GatewayContractError(gateway.name, "refund")

            self._decorate(result, payment)
            result.amount = amount

            await self.storage.create_transaction(Transaction(
                id=None,
                payment_id=payment.id,
                type=TransactionType.REFUND,
                amount=amount,
                is_succeed=result.is_succeed,
                message=result.message,
                additional_data=result.model_dump_json(),
            ))

        log.info("payment_refund_finished", status=result.status.value, amount=str(amount))
        return result

    # ----------------------------------------------------------------- helpers

    async def _get_payment(self, tracking_number: int, log, event: str) -> Payment:
        payment = await self.storage.get_by_tracking_number(tracking_number)
        if payment is None:
            log.error(event)
            raise InvoiceNotFoundException(tracking_number)
        return payment

    async def _context(self, payment: Payment, request: Optional[CallbackRequest]) -> InvoiceContext:
        transactions = await self.storage.list_transactions(payment.id)
        return InvoiceContext(payment=payment, transactions=tuple(transactions), request=request)

    @staticmethod
    def _decorate(result: R, payment: Payment) -> R:
        result.tracking_number = payment.tracking_number
        result.amount = payment.amount
        result.gateway_name = payment.gateway_name
        result.gateway_account_name = payment.gateway_account_name
        return result

    def _duplicate_tracking_number(self, invoice: Invoice) -> PaymentRequestResult:
        return PaymentRequestResult(
            status=PaymentRequestResultStatus.TRACKING_NUMBER_ALREADY_EXISTS,
            tracking_number=invoice.tracking_number,
            amount=invoice.amount,
            gateway_name=invoice.gateway_name,
            message=self.messages.duplicate_tracking_number,
        )

    def _amount_exceeds(self, payment: Payment, amount: Decimal) -> PaymentRefundResult:
        result = self._decorate(
            PaymentRefundResult(
                status=PaymentRefundResultStatus.REFUND_AMOUNT_EXCEEDS_PAID_AMOUNT,
                message=self.messages.refund_amount_exceeds_paid_amount,
            ),
            payment,
        )
        result.amount = amount
        return result
