"""
AppSettings model - user-editable fee rate and cash balance.
"""

from sqlmodel import SQLModel, Field


class AppSettings(SQLModel):
    """Singleton ledger settings (persisted in the 'settings' blob)."""
    fee_rate: float = Field(default=0.1425)  # percent of trade amount
    cash: float = Field(default=100000.0)  # TWD available
