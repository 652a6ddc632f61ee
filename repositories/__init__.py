"""
Repositories package for PortfoProphet.
Provides the data access layer for the four persisted state blobs.
"""

from repositories.state_repository import StateRepository
from repositories.settings_repository import SettingsRepository
from repositories.portfolio_repository import PortfolioRepository
from repositories.watchlist_repository import WatchlistRepository
from repositories.transaction_repository import TransactionRepository

__all__ = [
    'StateRepository',
    'SettingsRepository',
    'PortfolioRepository',
    'WatchlistRepository',
    'TransactionRepository',
]
