"""
Watchlist service - symbols followed independently of the portfolio.
"""

import logging
from typing import List, Optional

from models import WatchListItem
from services.common import clean_symbol

logger = logging.getLogger(__name__)


class Watchlist:
    """Ordered, symbol-unique list of watched stocks."""

    def __init__(self, items: Optional[List[WatchListItem]] = None):
        self.items: List[WatchListItem] = list(items or [])

    def contains(self, symbol: str) -> bool:
        symbol = clean_symbol(symbol)
        return any(item.symbol == symbol for item in self.items)

    def symbols(self) -> List[str]:
        return [item.symbol for item in self.items]

    def add(self, symbol: str) -> Optional[WatchListItem]:
        """
        Watch a symbol.

        Returns:
            The new item, the existing item for a duplicate symbol,
            or None for a blank symbol
        """
        symbol = clean_symbol(symbol)
        if not symbol:
            return None

        existing = next((item for item in self.items if item.symbol == symbol), None)
        if existing:
            logger.debug(f"{symbol} already on watchlist")
            return existing

        item = WatchListItem(symbol=symbol)
        self.items.append(item)
        logger.info(f"Added {symbol} to watchlist")
        return item

    def remove(self, item_id: str) -> bool:
        """Stop watching an item. Returns True if it was present."""
        before = len(self.items)
        self.items = [item for item in self.items if item.id != item_id]
        return len(self.items) != before
