"""
Watchlist Repository - watched symbols stored in the 'watchlist' blob.
"""

from typing import List

from models import WatchListItem
from repositories._records import load_records, save_records

WATCHLIST_KEY = "watchlist"


class WatchlistRepository:
    """Repository for WatchListItem records."""

    @staticmethod
    def get_all() -> List[WatchListItem]:
        return load_records(WATCHLIST_KEY, WatchListItem)

    @staticmethod
    def save_all(items: List[WatchListItem]) -> None:
        save_records(WATCHLIST_KEY, items)
