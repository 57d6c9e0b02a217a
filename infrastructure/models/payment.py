"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, Numeric, DateTime, Text, Boolean,
    Index, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    支付数据库模型

    tracking_number 与 token 的唯一约束是并发创建时的最终防线，
    约束名包含列名，便于仓储层将 IntegrityError 映射为领域异常。
    """
    __tablename__ = "payments"

    # 主键
    id = Column(Integer, primary_key=True, autoincrement=True)

    # 业务标识
    tracking_number = Column(BigInteger, nullable=False, comment="跟踪号")
    token = Column(String(200), nullable=False, comment="支付令牌")

    # 金额信息（使用 Numeric 存储精确金额）
    amount = Column(Numeric(precision=18, scale=2), nullable=False, comment="支付金额")

    # 网关信息
    gateway_name = Column(String(50), nullable=False, index=True, comment="网关名称")
    gateway_account_name = Column(String(100), nullable=True, comment="网关账户名称")

    # 状态
    is_completed = Column(Boolean, nullable=False, default=False, comment="是否已完成")
    is_paid = Column(Boolean, nullable=False, default=False, comment="是否已支付")
    transaction_code = Column(String(200), nullable=True, comment="网关交易号")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    # 关系
    transactions = relationship(
        "TransactionModel",
        back_populates="payment",
        lazy="select",
        order_by="TransactionModel.id",
    )

    __table_args__ = (
        UniqueConstraint("tracking_number", name="uq_payments_tracking_number"),
        UniqueConstraint("token", name="uq_payments_token"),
        Index("ix_payments_completed", "is_completed"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, tracking_number={self.tracking_number}, "
            f"gateway='{self.gateway_name}', amount={self.amount}, completed={self.is_completed})>"
        )


class TransactionModel(Base):
    """
    交易数据库模型

    只追加写入，按 id 顺序构成支付审计日志
    """
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)

    payment_id = Column(
        Integer,
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="关联的支付ID"
    )

    type = Column(String(20), nullable=False, comment="交易类型: request/callback/verify/canceled/refund")
    amount = Column(Numeric(precision=18, scale=2), nullable=False, comment="金额")
    is_succeed = Column(Boolean, nullable=False, default=False, comment="是否成功")
    message = Column(Text, nullable=True, comment="消息")
    additional_data = Column(Text, nullable=True, comment="网关附加数据（JSON）")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    payment = relationship("PaymentModel", back_populates="transactions")

    __table_args__ = (
        Index("ix_payment_transactions_payment_type", "payment_id", "type"),
    )

    def __repr__(self):
        return (
            f"<TransactionModel(id={self.id}, payment_id={self.payment_id}, "
            f"type='{self.type}', succeed={self.is_succeed})>"
        )
