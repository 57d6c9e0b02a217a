"""
支付领域异常
"""
from __future__ import annotations

from typing import Union

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class InvoiceNotFoundException(BusinessException):
    """跟踪号或令牌对应的支付不存在"""
    def __init__(self, identifier: Union[int, str]):
        super().__init__(
            code=PaymentCode.INVOICE_NOT_FOUND,
            message=f"No payment found for: {identifier}",
            error_type="InvoiceNotFound",
            details={"identifier": str(identifier)},
        )


class PaymentAlreadyExistsException(BusinessException):
    """跟踪号已存在支付记录（存储层唯一约束冲突）"""
    def __init__(self, tracking_number: int):
        super().__init__(
            code=PaymentCode.PAYMENT_ALREADY_EXISTS,
            message=f"Payment with tracking number {tracking_number} already exists",
            error_type="PaymentAlreadyExists",
            details={"tracking_number": tracking_number},
            field="tracking_number",
        )


class PaymentTokenAlreadyExistsException(BusinessException):
    """令牌已被其他支付占用（存储层唯一约束冲突）"""
    def __init__(self, token: str):
        super().__init__(
            code=PaymentCode.PAYMENT_ALREADY_EXISTS,
            message=f"Payment token {token} already exists",
            error_type="PaymentTokenAlreadyExists",
            details={"token": token},
            field="token",
        )


class PaymentTokenProviderException(BusinessException):
    """令牌提供者未给出令牌，或给出的令牌冲突"""
    def __init__(self, message: str):
        super().__init__(
            code=PaymentCode.PAYMENT_TOKEN_ERROR,
            message=message,
            error_type="PaymentTokenProviderError",
        )


class GatewayNotRegisteredException(BusinessException):
    """网关未注册"""
    def __init__(self, name: str):
        super().__init__(
            code=PaymentCode.GATEWAY_NOT_REGISTERED,
            message=f"Gateway '{name}' is not registered",
            error_type="GatewayNotRegistered",
            details={"gateway": name},
            field="gateway_name",
        )


class GatewayAccountNotFoundException(BusinessException):
    """网关账户不存在"""
    def __init__(self, gateway: str, account: str):
        super().__init__(
            code=PaymentCode.GATEWAY_ACCOUNT_NOT_FOUND,
            message=f"Gateway '{gateway}' has no account named '{account}'",
            error_type="GatewayAccountNotFound",
            details={"gateway": gateway, "account": account},
            field="gateway_account_name",
        )


class GatewayContractError(RuntimeError):
    """网关违反契约（例如返回 None），属于不可恢复错误，不做包装"""

    def __init__(self, gateway: str, operation: str):
        self.gateway = gateway
        self.operation = operation
        super().__init__(f"Gateway '{gateway}' returned None instead of a result for '{operation}'")
