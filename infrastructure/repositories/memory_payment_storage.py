"""
内存版支付存储 - 用于开发与测试

唯一性检查与写入之间没有 await，在单事件循环内天然原子。
返回的实体均为副本，调用方修改后须显式 update。
"""
from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from domain.payment.entity import Payment, Transaction
from domain.payment.exceptions import (
    PaymentAlreadyExistsException,
    PaymentTokenAlreadyExistsException,
)
from domain.payment.repository import PaymentStorage


class InMemoryPaymentStorage(PaymentStorage):
    def __init__(self) -> None:
        self._payments: Dict[int, Payment] = {}
        self._by_tracking_number: Dict[int, int] = {}
        self._by_token: Dict[str, int] = {}
        self._transactions: Dict[int, List[Transaction]] = {}
        self._payment_ids = itertools.count(1)
        self._transaction_ids = itertools.count(1)

    async def exists_by_tracking_number(self, tracking_number: int) -> bool:
        return tracking_number in self._by_tracking_number

    async def exists_by_token(self, token: str) -> bool:
        return token in self._by_token

    async def create(self, payment: Payment) -> Payment:
        if payment.tracking_number in self._by_tracking_number:
            raise PaymentAlreadyExistsException(payment.tracking_number)
        if payment.token in self._by_token:
            raise PaymentTokenAlreadyExistsException(payment.token)

        stored = replace(payment, id=next(self._payment_ids))
        self._payments[stored.id] = stored
        self._by_tracking_number[stored.tracking_number] = stored.id
        self._by_token[stored.token] = stored.id
        self._transactions[stored.id] = []
        return replace(stored)

    async def update(self, payment: Payment) -> Payment:
        if payment.id not in self._payments:
            raise ValueError(f"Payment with id {payment.id} not found")
        stored = replace(payment, updated_at=datetime.now(timezone.utc))
        self._payments[stored.id] = stored
        return replace(stored)

    async def get_by_tracking_number(self, tracking_number: int) -> Optional[Payment]:
        payment_id = self._by_tracking_number.get(tracking_number)
        return replace(self._payments[payment_id]) if payment_id is not None else None

    async def get_by_token(self, token: str) -> Optional[Payment]:
        payment_id = self._by_token.get(token)
        return replace(self._payments[payment_id]) if payment_id is not None else None

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        if transaction.payment_id not in self._transactions:
            raise ValueError(f"Payment with id {transaction.payment_id} not found")
        stored = replace(transaction, id=next(self._transaction_ids))
        self._transactions[transaction.payment_id].append(stored)
        return stored

    async def list_transactions(self, payment_id: int) -> List[Transaction]:
        return list(self._transactions.get(payment_id, ()))

    def __len__(self) -> int:
        return len(self._payments)
