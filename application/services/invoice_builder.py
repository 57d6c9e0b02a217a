"""
Fluent builder for payment invoices.

Example::

    invoice = (
        InvoiceBuilder()
        .use_auto_random_tracking_number()
        .set_amount(10000)
        .set_callback_url("https://shop.example/payments/callback")
        .set_gateway("ParbadVirtual")
        .build()
    )
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from pydantic import ValidationError

from application.dtos.payments import Invoice
from application.utils.tracking_numbers import AutoRandomTrackingNumberProvider
from domain.common.exceptions import DomainValidationException


class InvoiceBuilder:
    def __init__(self) -> None:
        self._tracking_number: Optional[int] = None
        self._tracking_number_provider: Optional[AutoRandomTrackingNumberProvider] = None
        self._amount: Optional[Decimal] = None
        self._callback_url: Optional[str] = None
        self._gateway_name: Optional[str] = None
        self._gateway_account_name: Optional[str] = None
        self._properties: dict[str, Any] = {}

    def set_tracking_number(self, tracking_number: int) -> "InvoiceBuilder":
        self._tracking_number = tracking_number
        self._tracking_number_provider = None
        return self

    def use_auto_random_tracking_number(self, minimum: int = 1000) -> "InvoiceBuilder":
        try:
            self._tracking_number_provider = AutoRandomTrackingNumberProvider(minimum)
        except ValueError as e:
            raise DomainValidationException(str(e), field="tracking_number") from e
        self._tracking_number = None
        return self

    def set_amount(self, amount: Union[Decimal, int, str]) -> "InvoiceBuilder":
        try:
            self._amount = Decimal(str(amount))
        except InvalidOperation as e:
            raise DomainValidationException(f"Invalid amount: {amount!r}", field="amount") from e
        return self

    def set_callback_url(self, callback_url: str) -> "InvoiceBuilder":
        self._callback_url = callback_url
        return self

    def set_gateway(self, gateway_name: str) -> "InvoiceBuilder":
        self._gateway_name = gateway_name
        return self

    def set_gateway_account_name(self, account_name: str) -> "InvoiceBuilder":
        self._gateway_account_name = account_name
        return self

    def add_property(self, key: str, value: Any) -> "InvoiceBuilder":
        self._properties[key] = value
        return self

    def build(self) -> Invoice:
        tracking_number = self._tracking_number
        if tracking_number is None and self._tracking_number_provider is not None:
            tracking_number = self._tracking_number_provider.provide()

        if tracking_number is None:
            raise DomainValidationException("Tracking number is required", field="tracking_number")
        if self._amount is None:
            raise DomainValidationException("Amount is required", field="amount")
        if not self._callback_url:
            raise DomainValidationException("Callback URL is required", field="callback_url")
        if not self._gateway_name:
            raise DomainValidationException("Gateway name is required", field="gateway_name")

        try:
            return Invoice(
                tracking_number=tracking_number,
                amount=self._amount,
                gateway_name=self._gateway_name,
                callback_url=self._callback_url,
                gateway_account_name=self._gateway_account_name,
                properties=dict(self._properties),
            )
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(loc) for loc in first.get("loc", ()))
            raise DomainValidationException(first.get("msg", str(e)), field=field or None) from e
