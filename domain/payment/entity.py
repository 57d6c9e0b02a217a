"""
支付领域实体 - 支付聚合根与交易记录
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class TransactionType(str, Enum):
    """交易类型枚举"""
    REQUEST = "request"       # 发起支付
    CALLBACK = "callback"     # 网关回调
    VERIFY = "verify"         # 核验
    CANCELED = "canceled"     # 取消
    REFUND = "refund"         # 退款


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Payment:
    """
    支付聚合根 - 管理支付生命周期

    业务规则：
    1. 跟踪号（tracking_number）与令牌（token）全局唯一，创建后不可变
    2. 金额必须大于0
    3. is_paid 为真时 is_completed 必须为真
    4. is_completed 一旦为真不可回退
    """

    id: Optional[int]
    tracking_number: int
    amount: Decimal
    token: str
    gateway_name: str
    gateway_account_name: Optional[str] = None
    is_completed: bool = False
    is_paid: bool = False
    transaction_code: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后验证"""
        if self.amount <= 0:
            raise DomainValidationException(
                f"支付金额必须大于0: {self.amount}",
                field="amount"
            )
        if not self.token:
            raise DomainValidationException("支付令牌不能为空", field="token")
        if self.is_paid and not self.is_completed:
            raise DomainValidationException(
                "未完成的支付不能标记为已支付",
                field="is_paid"
            )
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def mark_completed(self, *, is_paid: bool, transaction_code: Optional[str] = None) -> None:
        """
        终态转换：完成支付（成功或失败）

        业务规则：只能从未完成状态转换一次
        """
        if self.is_completed:
            raise DomainValidationException(
                f"支付 {self.tracking_number} 已处于终态",
                field="is_completed"
            )
        self.is_completed = True
        self.is_paid = is_paid
        if transaction_code is not None:
            self.transaction_code = transaction_code
        self.updated_at = datetime.now(timezone.utc)


@dataclass(frozen=True)
class Transaction:
    """
    交易记录 - Payment 聚合的只追加审计日志

    写入后不可修改，按 id 排序构成完整的支付流水。
    """

    id: Optional[int]
    payment_id: int
    type: TransactionType
    amount: Decimal
    is_succeed: bool
    message: Optional[str] = None
    additional_data: Optional[str] = None  # 网关相关的序列化数据（JSON文本）
    created_at: Optional[datetime] = field(default_factory=lambda: datetime.now(timezone.utc))
