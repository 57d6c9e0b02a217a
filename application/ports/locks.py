"""
Keyed lock port used to serialize operations on a single payment.
"""
from __future__ import annotations

from typing import AsyncContextManager, Protocol, runtime_checkable


@runtime_checkable
class KeyedLock(Protocol):
    def hold(self, key: str) -> AsyncContextManager[None]: ...
