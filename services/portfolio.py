"""
Portfolio ledger for holdings, cash and realized transactions.
Pure arithmetic on in-memory records; persistence is left to the caller.
All amounts are in TWD.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional

from models import AppSettings, PortfolioItem, Transaction
from services.common import LedgerError, clean_symbol, round_half_up

logger = logging.getLogger(__name__)


@dataclass
class PortfolioSummary:
    """Portfolio-wide totals shown on the dashboard."""
    total_market_value: float
    total_cost_basis: float
    unrealized_pl: float
    unrealized_pl_pct: float
    cash: float
    net_worth: float  # market value + cash
    realized_pl: float
    holdings: List[Dict]


class PortfolioLedger:
    """
    Holdings, cash balance and the sale log.

    Buying deducts price * shares + fee from cash and folds the fee into the
    average cost. Selling credits price * shares - fee and books
    realized P/L against the (unchanged) average cost.
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        items: Optional[List[PortfolioItem]] = None,
        transactions: Optional[List[Transaction]] = None
    ):
        self.settings = settings or AppSettings()
        self.items: List[PortfolioItem] = list(items or [])
        self.transactions: List[Transaction] = list(transactions or [])

    @property
    def cash(self) -> float:
        return self.settings.cash

    def get_item(self, item_id: str) -> Optional[PortfolioItem]:
        """Find a position by id."""
        return next((item for item in self.items if item.id == item_id), None)

    def get_by_symbol(self, symbol: str) -> Optional[PortfolioItem]:
        """Find a position by symbol."""
        symbol = clean_symbol(symbol)
        return next((item for item in self.items if item.symbol == symbol), None)

    def symbols(self) -> List[str]:
        return [item.symbol for item in self.items]

    def estimate_fee(self, shares: float, price: float) -> int:
        """Broker fee estimate: trade amount times the fee-rate percentage, rounded."""
        return round_half_up(shares * price * (self.settings.fee_rate / 100))

    def buy(
        self,
        symbol: str,
        shares: float,
        price: float,
        fee: Optional[float] = None,
        name: Optional[str] = None
    ) -> PortfolioItem:
        """
        Record a purchase.

        Args:
            symbol: Stock symbol
            shares: Number of shares bought (> 0)
            price: Price per share (> 0)
            fee: Broker fee; estimated from the fee rate when None
            name: Display name (default: existing name or the symbol)

        Returns:
            The new or updated position

        Raises:
            LedgerError: If the symbol is blank or an amount is invalid
        """
        symbol = clean_symbol(symbol)
        if not symbol:
            raise LedgerError("股票代碼不可為空")
        if shares <= 0 or price <= 0:
            raise LedgerError("股數與單價必須大於 0")
        if fee is None:
            fee = self.estimate_fee(shares, price)
        if fee < 0:
            raise LedgerError("手續費不可為負數")

        total_cost = price * shares + fee
        item = self.get_by_symbol(symbol)

        if item is None:
            item = PortfolioItem(
                symbol=symbol,
                name=name or symbol,
                shares=shares,
                avg_cost=total_cost / shares,
            )
            self.items.append(item)
        else:
            held_cost = item.avg_cost * item.shares
            item.shares += shares
            item.avg_cost = (held_cost + total_cost) / item.shares
            if name:
                item.name = name

        self.settings.cash -= total_cost
        if self.settings.cash < 0:
            logger.warning(f"Cash balance is negative after buying {symbol}: {self.settings.cash:,.0f}")

        logger.info(f"Bought {shares:g} {symbol} @ {price} (fee {fee}); avg cost now {item.avg_cost:.2f}")
        return item

    def sell(
        self,
        item_id: str,
        shares: float,
        price: float,
        fee: Optional[float] = None
    ) -> Transaction:
        """
        Record a sale and book realized P/L.

        Args:
            item_id: Position id
            shares: Number of shares sold (0 < shares <= held)
            price: Sale price per share (> 0)
            fee: Broker fee; estimated from the fee rate when None

        Returns:
            The appended Transaction

        Raises:
            LedgerError: If the position is unknown or an amount is invalid
        """
        item = self.get_item(item_id)
        if item is None:
            raise LedgerError(f"找不到持倉：{item_id}")
        if shares <= 0 or shares > item.shares:
            raise LedgerError("賣出股數無效")
        if price <= 0:
            raise LedgerError("賣出單價必須大於 0")
        if fee is None:
            fee = self.estimate_fee(shares, price)
        if fee < 0:
            raise LedgerError("手續費不可為負數")

        revenue = price * shares - fee
        cost = item.avg_cost * shares
        profit = revenue - cost
        return_rate = (profit / cost) * 100 if cost > 0 else 0.0

        transaction = Transaction(
            symbol=item.symbol,
            name=item.name,
            shares=shares,
            price=price,
            fee=fee,
            realized_pl=profit,
            return_rate=return_rate,
        )
        self.transactions.append(transaction)
        self.settings.cash += revenue

        if math.isclose(shares, item.shares):
            self.items = [p for p in self.items if p.id != item.id]
        else:
            item.shares -= shares

        logger.info(f"Sold {shares:g} {item.symbol} @ {price}: realized {profit:,.0f} ({return_rate:.2f}%)")
        return transaction

    def remove_position(self, item_id: str) -> bool:
        """Drop a position without touching cash (data-entry correction)."""
        before = len(self.items)
        self.items = [p for p in self.items if p.id != item_id]
        return len(self.items) != before

    def rename(self, symbol: str, name: str) -> int:
        """Set the display name of positions for a symbol. Returns the count updated."""
        symbol = clean_symbol(symbol)
        count = 0
        for item in self.items:
            if item.symbol == symbol and name:
                item.name = name
                count += 1
        return count

    def realized_pl(self) -> float:
        return sum(t.realized_pl for t in self.transactions)

    def summary(self, prices: Dict[str, float]) -> PortfolioSummary:
        """
        Calculate portfolio totals.

        Args:
            prices: Latest price per symbol; positions without one count as 0 market value

        Returns:
            PortfolioSummary
        """
        holdings = []
        total_value = 0.0
        total_cost = 0.0

        for item in self.items:
            price = prices.get(item.symbol)
            value = (price or 0.0) * item.shares
            cost = item.cost_basis
            pnl = value - cost if price is not None else None
            holdings.append({
                'id': item.id,
                'symbol': item.symbol,
                'name': item.name,
                'shares': item.shares,
                'avg_cost': round(item.avg_cost, 2),
                'current_price': price,
                'market_value': round(value, 2),
                'cost_basis': round(cost, 2),
                'unrealized_pl': round(pnl, 2) if pnl is not None else None,
                'unrealized_pl_pct': round(pnl / cost * 100, 2) if pnl is not None and cost > 0 else None,
            })
            total_value += value
            total_cost += cost

        unrealized = total_value - total_cost
        return PortfolioSummary(
            total_market_value=round(total_value, 2),
            total_cost_basis=round(total_cost, 2),
            unrealized_pl=round(unrealized, 2),
            unrealized_pl_pct=round(unrealized / total_cost * 100, 2) if total_cost > 0 else 0.0,
            cash=round(self.cash, 2),
            net_worth=round(total_value + self.cash, 2),
            realized_pl=round(self.realized_pl(), 2),
            holdings=holdings,
        )

    def advice_items(self, prices: Dict[str, float]) -> List[Dict]:
        """Holdings for the portfolio-advice prompt, priced at market or at cost."""
        return [
            {
                'symbol': item.symbol,
                'shares': item.shares,
                'current_price': prices.get(item.symbol) or item.avg_cost,
            }
            for item in self.items
        ]
