"""
支付存储实现 - 使用SQLAlchemy实现数据访问

每个操作使用独立会话与事务，单个写入即原子提交。
"""
from typing import Callable, Optional, List
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from domain.payment.entity import Payment, Transaction, TransactionType
from domain.payment.exceptions import (
    PaymentAlreadyExistsException,
    PaymentTokenAlreadyExistsException,
)
from domain.payment.repository import PaymentStorage
from infrastructure.models.payment import PaymentModel, TransactionModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentStorage(PaymentStorage):
    """支付存储的SQLAlchemy实现"""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    def _to_entity(model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            tracking_number=model.tracking_number,
            amount=Decimal(str(model.amount)),
            token=model.token,
            gateway_name=model.gateway_name,
            gateway_account_name=model.gateway_account_name,
            is_completed=model.is_completed,
            is_paid=model.is_paid,
            transaction_code=model.transaction_code,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _to_model(entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        return PaymentModel(
            id=entity.id,
            tracking_number=entity.tracking_number,
            amount=entity.amount,
            token=entity.token,
            gateway_name=entity.gateway_name,
            gateway_account_name=entity.gateway_account_name,
            is_completed=entity.is_completed,
            is_paid=entity.is_paid,
            transaction_code=entity.transaction_code,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    @staticmethod
    def _transaction_to_entity(model: TransactionModel) -> Transaction:
        return Transaction(
            id=model.id,
            payment_id=model.payment_id,
            type=TransactionType(model.type),
            amount=Decimal(str(model.amount)),
            is_succeed=model.is_succeed,
            message=model.message,
            additional_data=model.additional_data,
            created_at=model.created_at,
        )

    async def exists_by_tracking_number(self, tracking_number: int) -> bool:
        """检查跟踪号是否已有支付记录"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count(PaymentModel.id)).where(
                    PaymentModel.tracking_number == tracking_number
                )
            )
            return result.scalar_one() > 0

    async def exists_by_token(self, token: str) -> bool:
        """检查令牌是否已被占用"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count(PaymentModel.id)).where(PaymentModel.token == token)
            )
            return result.scalar_one() > 0

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录（唯一约束冲突映射为领域异常）"""
        db_payment = self._to_model(payment)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(db_payment)
                    await session.flush()
                entity = self._to_entity(db_payment)
        except IntegrityError as e:
            msg = str(e.orig if e.orig is not None else e).lower()
            if "tracking_number" in msg:
                logger.warning("payment_create_conflict", tracking_number=payment.tracking_number)
                raise PaymentAlreadyExistsException(payment.tracking_number) from e
            if "token" in msg:
                logger.warning("payment_token_conflict", tracking_number=payment.tracking_number)
                raise PaymentTokenAlreadyExistsException(payment.token) from e
            raise

        logger.info(
            "payment_created",
            payment_id=entity.id,
            tracking_number=entity.tracking_number,
            gateway=entity.gateway_name,
        )
        return entity

    async def update(self, payment: Payment) -> Payment:
        """更新支付记录（仅可变字段）"""
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(PaymentModel).where(PaymentModel.id == payment.id)
                )
                db_payment = result.scalar_one_or_none()

                if not db_payment:
                    raise ValueError(f"Payment with id {payment.id} not found")

                db_payment.gateway_account_name = payment.gateway_account_name
                db_payment.is_completed = payment.is_completed
                db_payment.is_paid = payment.is_paid
                db_payment.transaction_code = payment.transaction_code
                if payment.updated_at is not None:
                    db_payment.updated_at = payment.updated_at

                await session.flush()
            entity = self._to_entity(db_payment)

        logger.info(
            "payment_updated",
            payment_id=entity.id,
            tracking_number=entity.tracking_number,
            is_completed=entity.is_completed,
            is_paid=entity.is_paid,
        )
        return entity

    async def get_by_tracking_number(self, tracking_number: int) -> Optional[Payment]:
        """根据跟踪号获取支付"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(PaymentModel).where(PaymentModel.tracking_number == tracking_number)
            )
            db_payment = result.scalar_one_or_none()
            return self._to_entity(db_payment) if db_payment else None

    async def get_by_token(self, token: str) -> Optional[Payment]:
        """根据令牌获取支付"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(PaymentModel).where(PaymentModel.token == token)
            )
            db_payment = result.scalar_one_or_none()
            return self._to_entity(db_payment) if db_payment else None

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        """追加交易记录"""
        db_transaction = TransactionModel(
            payment_id=transaction.payment_id,
            type=transaction.type.value,
            amount=transaction.amount,
            is_succeed=transaction.is_succeed,
            message=transaction.message,
            additional_data=transaction.additional_data,
            created_at=transaction.created_at,
        )
        async with self._session_factory() as session:
            async with session.begin():
                session.add(db_transaction)
                await session.flush()
            entity = self._transaction_to_entity(db_transaction)

        logger.info(
            "payment_transaction_created",
            transaction_id=entity.id,
            payment_id=entity.payment_id,
            type=entity.type.value,
            is_succeed=entity.is_succeed,
        )
        return entity

    async def list_transactions(self, payment_id: int) -> List[Transaction]:
        """获取支付的交易记录（按写入顺序）"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(TransactionModel)
                .where(TransactionModel.payment_id == payment_id)
                .order_by(TransactionModel.id.asc())
            )
            return [self._transaction_to_entity(t) for t in result.scalars().all()]
