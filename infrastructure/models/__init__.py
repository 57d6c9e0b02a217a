"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment import PaymentModel, TransactionModel

__all__ = [
    "Base",
    "metadata",
    "PaymentModel",
    "TransactionModel",
]
