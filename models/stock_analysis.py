"""
StockAnalysis model - latest cached quote plus AI commentary for a symbol.
"""

import time
from typing import List, Optional
from pydantic import BaseModel, Field as PydanticField
from sqlmodel import SQLModel, Field


NO_ADVICE_TEXT = "暫無建議"
NOT_AVAILABLE = "N/A"
DEFAULT_VOLATILITY = 0.3


class PricePoint(SQLModel):
    """A single daily close."""
    date: str
    price: float


class Scenarios(SQLModel):
    """Optimistic / neutral / pessimistic price-path narratives."""
    optimistic: str = NO_ADVICE_TEXT
    neutral: str = NO_ADVICE_TEXT
    pessimistic: str = NO_ADVICE_TEXT


class AIPrediction(SQLModel):
    """Structured outlook produced by the structuring stage."""
    trend_analysis: str = NO_ADVICE_TEXT
    volatility_analysis: str = NO_ADVICE_TEXT
    key_levels: str = NO_ADVICE_TEXT
    scenarios: Scenarios = Field(default_factory=Scenarios)
    conclusion: str = NO_ADVICE_TEXT


class StockAnalysis(SQLModel):
    """
    Per-symbol snapshot, overwritten on each refresh.
    Price fields come from the market data API; everything else is AI-derived.
    """
    symbol: str
    company_name: str
    market_cap: str = NOT_AVAILABLE
    eps: str = NOT_AVAILABLE
    pe: str = NOT_AVAILABLE
    current_price: float
    prev_close: Optional[float] = None
    change_percent: float = 0.0
    volatility: float = DEFAULT_VOLATILITY
    history: List[PricePoint] = Field(default_factory=list)
    advice: str = NO_ADVICE_TEXT
    ai_prediction: AIPrediction = Field(default_factory=AIPrediction)
    grounding_urls: List[str] = Field(default_factory=list)
    last_updated: float = Field(default_factory=time.time)


class ScenarioOutline(BaseModel):
    optimistic: str = PydanticField(description="樂觀情境的邏輯與價格區間")
    neutral: str = PydanticField(description="中性情境的邏輯與價格區間")
    pessimistic: str = PydanticField(description="悲觀情境的邏輯與價格區間")


class PredictionOutline(BaseModel):
    trend_analysis: str = PydanticField(description="趨勢與技術指標分析")
    volatility_analysis: str = PydanticField(description="波動率與市場情緒分析")
    key_levels: str = PydanticField(description="目標日期機率分佈 (例如 5%、50%、95% 分位數)")
    scenarios: ScenarioOutline
    conclusion: str = PydanticField(description="最高機率情境與置信度結論")


class AnalysisOutline(BaseModel):
    """Output schema the structuring request asks the model to fill."""
    company_name: str = PydanticField(description="公司完整名稱")
    market_cap: str = PydanticField(description="市值，例如 '25.3兆' 或 'N/A'")
    eps: str = PydanticField(description="每股盈餘，例如 '12.5' 或 'N/A'")
    pe: str = PydanticField(description="本益比，例如 '20.5' 或 'N/A'")
    volatility: float = PydanticField(description="年化波動率，以小數表示 (0.3 代表 30%)")
    advice: str = PydanticField(description="簡短的投資建議總結")
    ai_prediction: PredictionOutline
