"""
Portfolio Repository - open positions stored in the 'portfolio' blob.
"""

from typing import List

from models import PortfolioItem
from repositories._records import load_records, save_records

PORTFOLIO_KEY = "portfolio"


class PortfolioRepository:
    """Repository for PortfolioItem records."""

    @staticmethod
    def get_all() -> List[PortfolioItem]:
        """Retrieve all open positions."""
        return load_records(PORTFOLIO_KEY, PortfolioItem)

    @staticmethod
    def save_all(items: List[PortfolioItem]) -> None:
        """Rewrite the full list of positions."""
        save_records(PORTFOLIO_KEY, items)
