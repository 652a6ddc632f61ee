"""
WatchListItem model - a symbol the user follows without holding it.
"""

from sqlmodel import SQLModel, Field

from models.portfolio_item import new_id


class WatchListItem(SQLModel):
    """Represents a watched symbol (persisted in the 'watchlist' blob)."""
    id: str = Field(default_factory=new_id)
    symbol: str
