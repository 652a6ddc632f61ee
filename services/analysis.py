"""
Analysis service - quote + generative AI pipeline for stock and portfolio commentary.

Pipeline for a single symbol:
1. authoritative closing price from MarketDataService (failure aborts everything)
2. search-grounded research request (free text)
3. fixed pause to stay under the AI provider's rate limit
4. structuring request that turns the research into JSON
5. merge: prices from the quote, text fields from the model or placeholders
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from config import get_settings
from llm_engine import LLMClient, LLMResponse
from models import StockAnalysis, AIPrediction, Scenarios, PricePoint, AnalysisOutline
from models.stock_analysis import NO_ADVICE_TEXT, NOT_AVAILABLE, DEFAULT_VOLATILITY
from prompts import (
    render_prompt,
    PORTFOLIO_EMPTY_TEXT,
    ADVICE_FAILED_TEXT,
    ADVICE_EMPTY_TEXT,
    RATE_LIMIT_ADVISORY,
)
from services.common import (
    PriceFetchError,
    calculate_change_percent,
    clean_symbol,
    extract_json,
    is_rate_limit_error,
    to_float,
)
from services.market_data import MarketDataService, Quote

logger = logging.getLogger(__name__)


def _text(value: Any, default: str) -> str:
    """Model text field, or the placeholder when missing/blank."""
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _field(data: Dict[str, Any], camel: str, snake: str) -> Any:
    """Read a field the model may have written in camelCase or snake_case."""
    return data.get(camel, data.get(snake))


def build_prediction(data: Dict[str, Any]) -> AIPrediction:
    """Build the structured outlook from parsed model JSON."""
    raw = _field(data, "aiPrediction", "ai_prediction")
    if not isinstance(raw, dict):
        return AIPrediction()

    scenarios_raw = raw.get("scenarios")
    scenarios = Scenarios()
    if isinstance(scenarios_raw, dict):
        scenarios = Scenarios(
            optimistic=_text(scenarios_raw.get("optimistic"), NO_ADVICE_TEXT),
            neutral=_text(scenarios_raw.get("neutral"), NO_ADVICE_TEXT),
            pessimistic=_text(scenarios_raw.get("pessimistic"), NO_ADVICE_TEXT),
        )

    return AIPrediction(
        trend_analysis=_text(_field(raw, "trendAnalysis", "trend_analysis"), NO_ADVICE_TEXT),
        volatility_analysis=_text(_field(raw, "volatilityAnalysis", "volatility_analysis"), NO_ADVICE_TEXT),
        key_levels=_text(_field(raw, "keyLevels", "key_levels"), NO_ADVICE_TEXT),
        scenarios=scenarios,
        conclusion=_text(raw.get("conclusion"), NO_ADVICE_TEXT),
    )


def merge_analysis(
    quote: Quote,
    data: Dict[str, Any],
    grounding_urls: Optional[List[str]] = None,
    advice_override: Optional[str] = None
) -> StockAnalysis:
    """
    Combine the authoritative quote with AI-derived fields.
    Price, previous close, change percent and history always come from the quote.
    """
    volatility = to_float(data.get("volatility"))
    if not volatility or volatility <= 0:
        volatility = DEFAULT_VOLATILITY

    try:
        history = [PricePoint(**point) for point in quote.history]
    except ValidationError as e:
        logger.warning(f"Dropping malformed price history for {quote.symbol}: {e}")
        history = []

    return StockAnalysis(
        symbol=quote.symbol.upper(),
        company_name=_text(_field(data, "companyName", "company_name"), quote.symbol),
        market_cap=_text(_field(data, "marketCap", "market_cap"), NOT_AVAILABLE),
        eps=_text(data.get("eps"), NOT_AVAILABLE),
        pe=_text(data.get("pe"), NOT_AVAILABLE),
        current_price=quote.price,
        prev_close=quote.prev_close,
        change_percent=calculate_change_percent(quote.price, quote.prev_close),
        volatility=volatility,
        history=history,
        advice=advice_override or _text(data.get("advice"), NO_ADVICE_TEXT),
        ai_prediction=build_prediction(data),
        grounding_urls=list(grounding_urls or []),
        last_updated=time.time(),
    )


class AnalysisService:
    """
    Orchestrates quote fetching and sequential AI requests.
    Requests are never retried automatically; the caller may invoke again.
    """

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        market_data: Any = MarketDataService,
        sleep: Callable[[float], None] = time.sleep,
        two_stage: Optional[bool] = None,
        call_delay: Optional[float] = None
    ):
        settings = get_settings()
        self._llm_client = llm_client
        self.market_data = market_data
        self.sleep = sleep
        self.two_stage = settings.analysis_two_stage if two_stage is None else two_stage
        self.call_delay = settings.ai_call_delay_seconds if call_delay is None else call_delay

    @property
    def llm_client(self) -> LLMClient:
        """Lazily build the LLM client so price-only failures never need an API key."""
        if self._llm_client is None:
            self._llm_client = LLMClient()
        return self._llm_client

    def pause(self):
        """Fixed pause between AI calls."""
        if self.call_delay > 0:
            logger.debug(f"Sleeping {self.call_delay}s before next AI call")
            self.sleep(self.call_delay)

    @staticmethod
    def _research_prompt(quote: Quote) -> str:
        history = ", ".join(f"{p['date']}: {p['price']}" for p in quote.history) or "N/A"
        prev_close = f"NT${quote.prev_close}" if quote.prev_close is not None else "N/A"
        return render_prompt(
            "stock_research.txt",
            symbol=quote.symbol,
            price=quote.price,
            prev_close=prev_close,
            trade_date=quote.trade_date,
            history=history,
        )

    def _research(self, llm_client: LLMClient, quote: Quote) -> LLMResponse:
        """Stage 1: free-text research grounded on a web search."""
        research = llm_client.generate(
            self._research_prompt(quote),
            search_query=f"{quote.symbol} 股票 新聞"
        )
        logger.info(f"Research stage for {quote.symbol}: {len(research.text)} chars, "
                    f"{len(research.grounding_urls)} sources")
        return research

    def _structure(self, llm_client: LLMClient, quote: Quote, research: LLMResponse) -> LLMResponse:
        """Stage 2: pause, then convert the research notes into schema-constrained JSON."""
        if not research.text.strip():
            return research

        self.pause()

        structured = llm_client.generate(
            render_prompt("stock_structuring.txt", symbol=quote.symbol, research=research.text),
            schema=AnalysisOutline
        )
        return LLMResponse(text=structured.text, grounding_urls=research.grounding_urls, data=structured.data)

    def _run_single_stage(self, llm_client: LLMClient, quote: Quote) -> LLMResponse:
        """One grounded request that answers directly in JSON."""
        prompt = render_prompt("stock_single_stage.txt", research_prompt=self._research_prompt(quote))
        return llm_client.generate(prompt, search_query=f"{quote.symbol} 股票 新聞")

    def analyze_stock(self, symbol: str) -> StockAnalysis:
        """
        Produce a fresh StockAnalysis for a symbol.

        Args:
            symbol: Taiwan stock symbol (e.g., "2330")

        Returns:
            StockAnalysis with the authoritative price and AI commentary
            (placeholders where the AI stage failed)

        Raises:
            PriceFetchError: If no price is available; no AI request is made
        """
        symbol = clean_symbol(symbol)
        quote = self.market_data.get_quote(symbol)
        if quote is None:
            raise PriceFetchError(symbol, "查無股價資料")

        # Configuration errors (missing API key) are not narrative failures
        llm_client = self.llm_client

        research: Optional[LLMResponse] = None
        try:
            if self.two_stage:
                research = self._research(llm_client, quote)
                response = self._structure(llm_client, quote, research)
            else:
                response = self._run_single_stage(llm_client, quote)
        except Exception as e:
            sources = research.grounding_urls if research else []
            if is_rate_limit_error(e):
                logger.warning(f"AI rate limit hit while analyzing {symbol}: {e}")
                return merge_analysis(quote, {}, sources, advice_override=RATE_LIMIT_ADVISORY)
            logger.error(f"AI analysis failed for {symbol}: {e}")
            return merge_analysis(quote, {}, sources)

        data = response.data if response.data is not None else extract_json(response.text)
        return merge_analysis(quote, data, response.grounding_urls)

    def get_portfolio_advice(self, portfolio_items: List[Dict[str, Any]], cash_on_hand: float) -> str:
        """
        Ask for an overall strategy given holdings and available cash.

        Args:
            portfolio_items: [{'symbol', 'shares', 'current_price'}, ...]
            cash_on_hand: Available cash in TWD

        Returns:
            Advice text, or a user-facing failure message
        """
        if portfolio_items:
            summary = ", ".join(
                f"{p['symbol']}: {p['shares']:g} 股 @ NT${p['current_price']:g}" for p in portfolio_items
            )
        else:
            summary = PORTFOLIO_EMPTY_TEXT

        prompt = render_prompt("portfolio_advice.txt", summary=summary, cash=f"{cash_on_hand:,.0f}")

        try:
            response = self.llm_client.generate(prompt, search_query="台股 大盤 最新 市場動態")
        except Exception as e:
            if is_rate_limit_error(e):
                logger.warning(f"AI rate limit hit during portfolio advice: {e}")
                return RATE_LIMIT_ADVISORY
            logger.error(f"Portfolio advice failed: {e}")
            return ADVICE_FAILED_TEXT.format(error=str(e) or "未知錯誤，請檢查 API Key 設定")

        return response.text.strip() or ADVICE_EMPTY_TEXT
