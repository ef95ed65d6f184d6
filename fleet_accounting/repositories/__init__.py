"""Repository layer - data access for the accounting tables."""

from .base import AccountingRepository
from .memory_repository import InMemoryAccountingRepository
from .mysql_repository import MySQLAccountingRepository

__all__ = [
    "AccountingRepository",
    "InMemoryAccountingRepository",
    "MySQLAccountingRepository",
]
