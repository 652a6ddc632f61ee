"""
Transaction model - an immutable record of a completed sale.
"""

from datetime import datetime
from sqlmodel import SQLModel, Field

from models.portfolio_item import new_id


class Transaction(SQLModel):
    """Represents a realized sale (append-only 'transactions' blob)."""
    id: str = Field(default_factory=new_id)
    symbol: str
    name: str
    type: str = "SELL"
    shares: float
    price: float  # Sale price per share
    fee: float
    realized_pl: float  # proceeds minus proportional cost basis
    return_rate: float  # percent of cost basis
    date: str = Field(default_factory=lambda: datetime.now().isoformat())
