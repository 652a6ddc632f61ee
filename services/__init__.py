"""
Services package for PortfoProphet.
Provides core business logic separated from presentation and data layers.
"""

from services.common import (
    PriceFetchError,
    LedgerError,
    clean_symbol,
    normalize_symbol,
    extract_json,
    is_rate_limit_error,
    round_half_up,
    calculate_change_percent,
)
from services.market_data import MarketDataService, Quote
from services.analysis import AnalysisService
from services.portfolio import PortfolioLedger, PortfolioSummary
from services.watchlist import Watchlist

__all__ = [
    # Common utilities
    'PriceFetchError',
    'LedgerError',
    'clean_symbol',
    'normalize_symbol',
    'extract_json',
    'is_rate_limit_error',
    'round_half_up',
    'calculate_change_percent',
    # Services
    'MarketDataService',
    'Quote',
    'AnalysisService',
    'PortfolioLedger',
    'PortfolioSummary',
    'Watchlist',
]
