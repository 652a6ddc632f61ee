"""
Transaction Repository - sale log stored in the 'transactions' blob.
"""

from typing import List

from models import Transaction
from repositories._records import load_records, save_records

TRANSACTIONS_KEY = "transactions"


class TransactionRepository:
    """Repository for Transaction records."""

    @staticmethod
    def get_all() -> List[Transaction]:
        """Retrieve the full sale log, oldest first."""
        return load_records(TRANSACTIONS_KEY, Transaction)

    @staticmethod
    def save_all(transactions: List[Transaction]) -> None:
        """Rewrite the sale log."""
        save_records(TRANSACTIONS_KEY, transactions)
