from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from domain.payment.entity import Payment, Transaction, TransactionType
from domain.payment.exceptions import (
    PaymentAlreadyExistsException,
    PaymentTokenAlreadyExistsException,
)
from infrastructure.database import create_tables
from infrastructure.repositories.payment_repository import SQLAlchemyPaymentStorage


async def _storage():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    return SQLAlchemyPaymentStorage(async_sessionmaker(bind=engine, expire_on_commit=False)), engine


def _payment(tracking_number: int = 123, token: str = "tok-123") -> Payment:
    now = datetime.now(timezone.utc)
    return Payment(
        id=None,
        tracking_number=tracking_number,
        amount=Decimal("10000"),
        token=token,
        gateway_name="ParbadVirtual",
        created_at=now,
        updated_at=now,
    )


@pytest.mark.asyncio
async def test_create_and_lookup():
    storage, engine = await _storage()
    try:
        created = await storage.create(_payment())
        assert created.id is not None

        assert await storage.exists_by_tracking_number(123)
        assert await storage.exists_by_token("tok-123")
        assert not await storage.exists_by_tracking_number(999)

        by_number = await storage.get_by_tracking_number(123)
        by_token = await storage.get_by_token("tok-123")
        assert by_number.id == by_token.id == created.id
        assert by_number.amount == Decimal("10000")
        assert by_number.created_at.tzinfo is not None
        assert await storage.get_by_token("missing") is None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_unique_violations_map_to_typed_exceptions():
    storage, engine = await _storage()
    try:
        await storage.create(_payment())
        with pytest.raises(PaymentAlreadyExistsException):
            await storage.create(_payment(token="other"))
        with pytest.raises(PaymentTokenAlreadyExistsException):
            await storage.create(_payment(tracking_number=456))
        assert not await storage.exists_by_tracking_number(456)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_update_persists_completion():
    storage, engine = await _storage()
    try:
        payment = await storage.create(_payment())
        payment.gateway_account_name = "Default"
        payment.mark_completed(is_paid=True, transaction_code="TX-9")
        await storage.update(payment)

        stored = await storage.get_by_tracking_number(123)
        assert stored.is_completed and stored.is_paid
        assert stored.transaction_code == "TX-9"
        assert stored.gateway_account_name == "Default"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_update_of_missing_payment_raises():
    storage, engine = await _storage()
    try:
        payment = _payment()
        payment.id = 42
        with pytest.raises(ValueError):
            await storage.update(payment)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_transactions_are_listed_in_insertion_order():
    storage, engine = await _storage()
    try:
        payment = await storage.create(_payment())
        for type_ in (TransactionType.REQUEST, TransactionType.CALLBACK, TransactionType.VERIFY):
            await storage.create_transaction(Transaction(
                id=None,
                payment_id=payment.id,
                type=type_,
                amount=Decimal("10000"),
                is_succeed=True,
                message=type_.value,
                additional_data='{"k": "v"}',
            ))

        transactions = await storage.list_transactions(payment.id)
        assert [t.type for t in transactions] == [
            TransactionType.REQUEST,
            TransactionType.CALLBACK,
            TransactionType.VERIFY,
        ]
        assert transactions[0].additional_data == '{"k": "v"}'
        assert transactions[0].id < transactions[1].id < transactions[2].id
        assert await storage.list_transactions(999) == []
    finally:
        await engine.dispose()
