"""
Payment specific codes.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Orchestration errors (2xxxx, payment range 201xx)
    INVOICE_NOT_FOUND = 20101
    PAYMENT_ALREADY_EXISTS = 20102
    PAYMENT_TOKEN_ERROR = 20103
    GATEWAY_NOT_REGISTERED = 20104
    GATEWAY_ACCOUNT_NOT_FOUND = 20105

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
