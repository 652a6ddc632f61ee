"""
PortfolioItem model - an open position held in the portfolio.
"""

import uuid
from sqlmodel import SQLModel, Field


def new_id() -> str:
    """Generate an identifier for a stored record."""
    return uuid.uuid4().hex


class PortfolioItem(SQLModel):
    """Represents an open position (persisted in the 'portfolio' blob)."""
    id: str = Field(default_factory=new_id)
    symbol: str  # e.g., "2330"
    name: str  # display name, falls back to the symbol
    shares: float
    avg_cost: float  # TWD per share, fees included

    @property
    def cost_basis(self) -> float:
        """Total cost of the position (average cost times shares)."""
        return self.avg_cost * self.shares
