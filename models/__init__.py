"""
Data models for PortfoProphet.
Domain records are plain SQLModel classes serialized into JSON blobs;
StoredState is the only table.
"""

from models.portfolio_item import PortfolioItem
from models.transaction import Transaction
from models.watchlist_item import WatchListItem
from models.app_settings import AppSettings
from models.stock_analysis import StockAnalysis, AIPrediction, Scenarios, PricePoint, AnalysisOutline
from models.stored_state import StoredState

__all__ = [
    'PortfolioItem',
    'Transaction',
    'WatchListItem',
    'AppSettings',
    'StockAnalysis',
    'AIPrediction',
    'Scenarios',
    'PricePoint',
    'AnalysisOutline',
    'StoredState',
]
