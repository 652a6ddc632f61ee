"""
PortfoProphet - application state controller.
Holds the portfolio, watchlist, sale log, settings and cached analyses, and
exposes one method per user action. Every state change rewrites the affected
persisted blob.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from db_engine import init_db
from models import AppSettings, PortfolioItem, StockAnalysis, Transaction, WatchListItem
from repositories import (
    PortfolioRepository,
    SettingsRepository,
    TransactionRepository,
    WatchlistRepository,
)
from services.analysis import AnalysisService
from services.common import PriceFetchError, clean_symbol
from services.portfolio import PortfolioLedger, PortfolioSummary
from services.watchlist import Watchlist

logger = logging.getLogger(__name__)


class PortfolioApp:
    """
    Single-user application state, loaded from storage at construction.
    Network calls made through this class run strictly one after another.
    """

    def __init__(
        self,
        analysis_service: Optional[AnalysisService] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        init_db()
        self.analysis_service = analysis_service or AnalysisService(sleep=sleep)
        self.sleep = sleep

        self.ledger = PortfolioLedger(
            settings=SettingsRepository.get(),
            items=PortfolioRepository.get_all(),
            transactions=TransactionRepository.get_all(),
        )
        self.watchlist = Watchlist(WatchlistRepository.get_all())

        # In-memory only; refreshed on demand
        self.analyses: Dict[str, StockAnalysis] = {}
        self.loading: Dict[str, bool] = {}
        self.errors: Dict[str, str] = {}
        self.overall_advice: str = ""

        logger.info(f"Loaded {len(self.ledger.items)} positions, "
                    f"{len(self.watchlist.items)} watched symbols, "
                    f"{len(self.ledger.transactions)} transactions")

    # ==================== PERSISTENCE ====================
    def _save_settings(self):
        SettingsRepository.save(self.ledger.settings)

    def _save_portfolio(self):
        PortfolioRepository.save_all(self.ledger.items)

    def _save_watchlist(self):
        WatchlistRepository.save_all(self.watchlist.items)

    def _save_transactions(self):
        TransactionRepository.save_all(self.ledger.transactions)

    # ==================== ACCESSORS ====================
    @property
    def settings(self) -> AppSettings:
        return self.ledger.settings

    @property
    def portfolio(self) -> List[PortfolioItem]:
        return self.ledger.items

    @property
    def transactions(self) -> List[Transaction]:
        return self.ledger.transactions

    @property
    def watched(self) -> List[WatchListItem]:
        return self.watchlist.items

    def current_prices(self) -> Dict[str, float]:
        """Latest cached price per analyzed symbol."""
        return {symbol: a.current_price for symbol, a in self.analyses.items()}

    def summary(self) -> PortfolioSummary:
        return self.ledger.summary(self.current_prices())

    # ==================== ANALYSIS ====================
    def analyze(self, symbol: str) -> Optional[StockAnalysis]:
        """
        Refresh the analysis for a symbol.

        Returns:
            The new StockAnalysis, or None if already loading or failed.
            Failures are kept in self.errors[symbol] for display.
        """
        symbol = clean_symbol(symbol)
        if not symbol or self.loading.get(symbol):
            return None

        self.loading[symbol] = True
        try:
            analysis = self.analysis_service.analyze_stock(symbol)
        except PriceFetchError as e:
            logger.error(f"Price fetch failed for {symbol}: {e}")
            self.errors[symbol] = str(e)
            return None
        except Exception as e:
            logger.error(f"Analysis failed for {symbol}: {e}")
            self.errors[symbol] = str(e) or "分析過程中發生未知錯誤"
            return None
        finally:
            self.loading[symbol] = False

        self.analyses[symbol] = analysis
        self.errors.pop(symbol, None)

        # company_name falls back to the symbol when the AI stage failed
        if analysis.company_name != symbol and self.ledger.rename(symbol, analysis.company_name):
            self._save_portfolio()
        return analysis

    def refresh_all(self) -> Dict[str, Optional[StockAnalysis]]:
        """Re-analyze every held and watched symbol, one at a time."""
        symbols = list(dict.fromkeys(self.ledger.symbols() + self.watchlist.symbols()))
        results = {}
        for i, symbol in enumerate(symbols):
            if i > 0:
                self.analysis_service.pause()
            results[symbol] = self.analyze(symbol)
        return results

    def get_portfolio_advice(self) -> str:
        """Ask the AI for an overall strategy covering holdings and cash."""
        items = self.ledger.advice_items(self.current_prices())
        self.overall_advice = self.analysis_service.get_portfolio_advice(items, self.ledger.cash)
        return self.overall_advice

    # ==================== PORTFOLIO ACTIONS ====================
    def estimate_fee(self, shares: float, price: float) -> int:
        return self.ledger.estimate_fee(shares, price)

    def add_stock(
        self,
        symbol: str,
        shares: float,
        price: float,
        fee: Optional[float] = None,
        analyze: bool = True
    ) -> PortfolioItem:
        """Record a purchase, persist, then fetch an analysis for the symbol."""
        symbol = clean_symbol(symbol)
        cached = self.analyses.get(symbol)
        item = self.ledger.buy(symbol, shares, price, fee, name=cached.company_name if cached else None)

        self._save_portfolio()
        self._save_settings()

        if analyze:
            self.analyze(item.symbol)
        return item

    def sell_stock(
        self,
        item_id: str,
        shares: float,
        price: float,
        fee: Optional[float] = None
    ) -> Transaction:
        """Record a sale and persist holdings, cash and the sale log."""
        transaction = self.ledger.sell(item_id, shares, price, fee)

        self._save_transactions()
        self._save_settings()
        self._save_portfolio()
        return transaction

    def remove_position(self, item_id: str) -> bool:
        removed = self.ledger.remove_position(item_id)
        if removed:
            self._save_portfolio()
        return removed

    # ==================== WATCHLIST ACTIONS ====================
    def add_to_watchlist(self, symbol: str, analyze: bool = True) -> Optional[WatchListItem]:
        """Watch a symbol and analyze it if no analysis is cached."""
        symbol = clean_symbol(symbol)
        if not symbol:
            return None
        if self.watchlist.contains(symbol):
            return next(item for item in self.watchlist.items if item.symbol == symbol)

        item = self.watchlist.add(symbol)
        self._save_watchlist()

        if analyze and symbol not in self.analyses:
            self.analyze(symbol)
        return item

    def remove_from_watchlist(self, item_id: str) -> bool:
        removed = self.watchlist.remove(item_id)
        if removed:
            self._save_watchlist()
        return removed

    def is_held(self, symbol: str) -> bool:
        """Whether a (watched) symbol is also in the portfolio."""
        return self.ledger.get_by_symbol(symbol) is not None

    # ==================== SETTINGS ====================
    def update_settings(self, fee_rate: Optional[float] = None, cash: Optional[float] = None) -> AppSettings:
        """Edit the fee rate (percent) and/or the cash balance."""
        if fee_rate is not None:
            if fee_rate < 0:
                raise ValueError("手續費率不可為負數")
            self.ledger.settings.fee_rate = fee_rate
        if cash is not None:
            self.ledger.settings.cash = cash
        self._save_settings()
        return self.ledger.settings


if __name__ == "__main__":
    from dotenv import load_dotenv
    load_dotenv()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    app = PortfolioApp()
    app.refresh_all()
    summary = app.summary()
    print(f"Net worth: NT${summary.net_worth:,.0f}  "
          f"(cash NT${summary.cash:,.0f}, unrealized {summary.unrealized_pl:+,.2f})")
    for holding in summary.holdings:
        print(f"  {holding['symbol']} {holding['name']}: {holding['shares']:g} @ {holding['avg_cost']}"
              f" -> {holding['current_price']}")
    for symbol, error in app.errors.items():
        print(f"  {symbol}: {error}")
