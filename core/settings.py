"""
Payment-related settings using pydantic-settings v2 with nested env keys.

This module is isolated so core.config.Settings stays focused on the app.
"""
from __future__ import annotations

from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class PaymentMessages(BaseModel):
    """User facing texts attached to results and transactions."""
    payment_succeed: str = "Payment was successful."
    payment_failed: str = "Payment failed."
    payment_is_already_processed_before: str = "The payment is already processed before."
    payment_canceled_programmatically: str = "Payment has been cancelled programmatically."
    duplicate_tracking_number: str = (
        "The tracking number is already exists in the system. Use another tracking number."
    )
    only_completed_payment_can_be_refunded: str = "Only a completed payment can be refunded."
    refund_amount_exceeds_paid_amount: str = "The refund amount cannot be greater than the paid amount."
    invalid_data_received_from_gateway: str = "Invalid data is received from the gateway."
    refund_not_supported: str = "The Refund operation is not supported by this gateway."


class TokenSettings(BaseModel):
    query_name: str = "paymentToken"


class TrackingNumberSettings(BaseModel):
    minimum: int = 1000


class RefundSettings(BaseModel):
    # Sum earlier successful refunds against the payment amount
    enforce_cumulative_limit: bool = True


class LockSettings(BaseModel):
    backend: Literal["memory", "redis"] = "memory"
    timeout_seconds: float = 30.0
    blocking_timeout_seconds: float = 10.0


class GatewayAccountSettings(BaseModel):
    name: str = "Default"
    api_key: Optional[str] = None
    is_test_account: bool = False


class VirtualGatewaySettings(BaseModel):
    enabled: bool = True
    gateway_path: str = "/api/v1/virtual-gateway"
    accounts: list[GatewayAccountSettings] = Field(default_factory=lambda: [GatewayAccountSettings()])


class IdPaySettings(BaseModel):
    enabled: bool = False
    api_request_url: str = "https://api.idpay.ir/v1.1/payment"
    api_verification_url: str = "https://api.idpay.ir/v1.1/payment/verify"
    accounts: list[GatewayAccountSettings] = Field(default_factory=list)


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    messages: PaymentMessages = Field(default_factory=PaymentMessages)
    token: TokenSettings = Field(default_factory=TokenSettings)
    tracking_number: TrackingNumberSettings = Field(default_factory=TrackingNumberSettings)
    refund: RefundSettings = Field(default_factory=RefundSettings)
    lock: LockSettings = Field(default_factory=LockSettings)

    virtual: VirtualGatewaySettings = Field(default_factory=VirtualGatewaySettings)
    idpay: IdPaySettings = Field(default_factory=IdPaySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
