"""
StoredState model - one keyed JSON blob of persisted application state.
"""

from datetime import datetime
from sqlmodel import SQLModel, Field


class StoredState(SQLModel, table=True):
    """
    Key/value row holding a serialized state blob.
    Keys in use: "settings", "portfolio", "watchlist", "transactions".
    """
    key: str = Field(primary_key=True)
    value: str  # JSON text
    updated_at: datetime = Field(default_factory=datetime.now)
