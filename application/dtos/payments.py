"""
Payment DTOs (Pydantic v2) used at application boundaries.

Inputs (Invoice, RefundInvoice), the inbound CallbackRequest, the
InvoiceContext handed to gateways and one result type per operation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Literal, Mapping

from pydantic import BaseModel, Field, computed_field
from pydantic.types import condecimal

from domain.payment.entity import Payment, Transaction, TransactionType


class Invoice(BaseModel):
    tracking_number: int
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    gateway_name: str
    callback_url: str
    gateway_account_name: Optional[str] = None
    properties: dict[str, Any] = Field(default_factory=dict)


class RefundInvoice(BaseModel):
    tracking_number: int
    amount: condecimal(ge=0) = Decimal("0")  # type: ignore[valid-type]  # 0 = refund in full


class CallbackRequest:
    """Inbound signal from a gateway (query string and form fields merged).

    Parameter lookup is case-insensitive, matching how providers vary the
    casing of their callback fields.
    """

    def __init__(self, params: Optional[Mapping[str, Any]] = None, method: str = "GET") -> None:
        self.method = method.upper()
        self._params = {str(k).lower(): (str(k), "" if v is None else str(v)) for k, v in (params or {}).items()}

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        item = self._params.get(name.lower())
        return item[1] if item else default

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._params

    @property
    def params(self) -> dict[str, str]:
        return {k: v for k, v in self._params.values()}

    def __bool__(self) -> bool:
        return bool(self._params)

    def __repr__(self) -> str:
        return f"CallbackRequest(method={self.method!r}, params={self.params!r})"


@dataclass(frozen=True)
class InvoiceContext:
    """Read-only view of a payment and its audit trail, passed to gateways."""

    payment: Payment
    transactions: tuple[Transaction, ...] = field(default_factory=tuple)
    request: Optional[CallbackRequest] = None

    def last_transaction(self, type_: TransactionType) -> Optional[Transaction]:
        for transaction in reversed(self.transactions):
            if transaction.type == type_:
                return transaction
        return None


class GatewayTransporter(BaseModel):
    """How the caller sends the customer to the gateway."""
    type: Literal["redirect", "post"]
    url: str
    form: dict[str, str] = Field(default_factory=dict)


class PaymentResult(BaseModel):
    tracking_number: Optional[int] = None
    amount: Optional[Decimal] = None
    gateway_name: Optional[str] = None
    gateway_account_name: Optional[str] = None
    message: Optional[str] = None
    additional_data: dict[str, Any] = Field(default_factory=dict)


class PaymentRequestResultStatus(str, Enum):
    SUCCEED = "succeed"
    FAILED = "failed"
    TRACKING_NUMBER_ALREADY_EXISTS = "tracking_number_already_exists"


class PaymentRequestResult(PaymentResult):
    status: PaymentRequestResultStatus
    transporter: Optional[GatewayTransporter] = None

    @computed_field  # type: ignore[misc]
    @property
    def is_succeed(self) -> bool:
        return self.status == PaymentRequestResultStatus.SUCCEED

    @classmethod
    def succeed_with_redirect(cls, url: str, account_name: Optional[str] = None, **kwargs) -> "PaymentRequestResult":
        return cls(
            status=PaymentRequestResultStatus.SUCCEED,
            gateway_account_name=account_name,
            transporter=GatewayTransporter(type="redirect", url=url),
            **kwargs,
        )

    @classmethod
    def succeed_with_post(
        cls,
        url: str,
        form: dict[str, str],
        account_name: Optional[str] = None,
        **kwargs,
    ) -> "PaymentRequestResult":
        return cls(
            status=PaymentRequestResultStatus.SUCCEED,
            gateway_account_name=account_name,
            transporter=GatewayTransporter(type="post", url=url, form=form),
            **kwargs,
        )

    @classmethod
    def failed(cls, message: Optional[str], account_name: Optional[str] = None, **kwargs) -> "PaymentRequestResult":
        return cls(
            status=PaymentRequestResultStatus.FAILED,
            message=message,
            gateway_account_name=account_name,
            **kwargs,
        )


class PaymentFetchResultStatus(str, Enum):
    READY_FOR_VERIFYING = "ready_for_verifying"
    FAILED = "failed"
    ALREADY_PROCESSED = "already_processed"


class PaymentFetchResult(PaymentResult):
    status: PaymentFetchResultStatus
    callback_result: Optional[dict[str, Any]] = None
    is_already_verified: bool = False

    @computed_field  # type: ignore[misc]
    @property
    def is_succeed(self) -> bool:
        return self.status == PaymentFetchResultStatus.READY_FOR_VERIFYING

    @classmethod
    def ready_for_verifying(cls, callback_result: Optional[dict[str, Any]] = None) -> "PaymentFetchResult":
        return cls(status=PaymentFetchResultStatus.READY_FOR_VERIFYING, callback_result=callback_result)

    @classmethod
    def failed(cls, message: Optional[str], callback_result: Optional[dict[str, Any]] = None) -> "PaymentFetchResult":
        return cls(status=PaymentFetchResultStatus.FAILED, message=message, callback_result=callback_result)


class PaymentVerifyResultStatus(str, Enum):
    SUCCEED = "succeed"
    FAILED = "failed"
    ALREADY_VERIFIED = "already_verified"


class PaymentVerifyResult(PaymentResult):
    status: PaymentVerifyResultStatus
    transaction_code: Optional[str] = None

    @computed_field  # type: ignore[misc]
    @property
    def is_succeed(self) -> bool:
        return self.status == PaymentVerifyResultStatus.SUCCEED

    @classmethod
    def succeed(cls, transaction_code: Optional[str], message: Optional[str] = None, **kwargs) -> "PaymentVerifyResult":
        return cls(
            status=PaymentVerifyResultStatus.SUCCEED,
            transaction_code=transaction_code,
            message=message,
            **kwargs,
        )

    @classmethod
    def failed(cls, message: Optional[str], **kwargs) -> "PaymentVerifyResult":
        return cls(status=PaymentVerifyResultStatus.FAILED, message=message, **kwargs)


class PaymentCancelResult(PaymentResult):
    is_succeed: bool


class PaymentRefundResultStatus(str, Enum):
    SUCCEED = "succeed"
    FAILED = "failed"
    REFUND_AMOUNT_EXCEEDS_PAID_AMOUNT = "refund_amount_exceeds_paid_amount"


class PaymentRefundResult(PaymentResult):
    status: PaymentRefundResultStatus

    @computed_field  # type: ignore[misc]
    @property
    def is_succeed(self) -> bool:
        return self.status == PaymentRefundResultStatus.SUCCEED

    @classmethod
    def succeed(cls, message: Optional[str] = None, **kwargs) -> "PaymentRefundResult":
        return cls(status=PaymentRefundResultStatus.SUCCEED, message=message, **kwargs)

    @classmethod
    def failed(cls, message: Optional[str], **kwargs) -> "PaymentRefundResult":
        return cls(status=PaymentRefundResultStatus.FAILED, message=message, **kwargs)
