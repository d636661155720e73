"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the M-Pesa domain models used by ``mpesa_analysis``.
"""

from .mpesa import Base, MpesaCategoryMapping, MpesaTransactionRow

__all__ = [
    "Base",
    "MpesaCategoryMapping",
    "MpesaTransactionRow",
]
