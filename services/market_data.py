"""
Market data service for fetching Taiwan stock closing prices.
The price returned here is authoritative: callers never substitute an
estimate when it is unavailable.
Default provider is the FinMind REST API; yfinance is available as an alternate.
"""

import yfinance as yf
import pandas as pd
import requests
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional

from config import get_settings
from services.common import PriceFetchError, clean_symbol, normalize_symbol

logger = logging.getLogger(__name__)

FINMIND_PRICE_DATASET = "TaiwanStockPrice"


@dataclass
class Quote:
    """Latest close for a symbol plus a short trailing history."""
    symbol: str
    price: float
    trade_date: str
    prev_close: Optional[float] = None
    history: List[dict] = field(default_factory=list)  # [{"date": ..., "price": ...}]


class MarketDataService:
    """
    Service for fetching daily price records from the configured provider.
    """

    @staticmethod
    def _fetch_finmind_prices(symbol: str, start: date, end: date) -> pd.DataFrame:
        """Fetch TaiwanStockPrice records from FinMind as a DataFrame."""
        settings = get_settings()
        params = {
            "dataset": FINMIND_PRICE_DATASET,
            "data_id": symbol,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
        }
        if settings.finmind_token:
            params["token"] = settings.finmind_token

        try:
            resp = requests.get(settings.finmind_api_url, params=params, timeout=settings.request_timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.exceptions.Timeout:
            raise PriceFetchError(symbol, "FinMind API 逾時")
        except requests.exceptions.RequestException as e:
            raise PriceFetchError(symbol, f"FinMind API 連線失敗 ({e})")
        except ValueError as e:
            raise PriceFetchError(symbol, f"FinMind 回應格式錯誤 ({e})")

        if isinstance(payload, dict):
            if payload.get("status", 200) != 200:
                raise PriceFetchError(symbol, f"FinMind: {payload.get('msg', 'unknown error')}")
            records = payload.get("data") or []
        elif isinstance(payload, list):
            records = payload
        else:
            records = []

        df = pd.DataFrame(records)
        if df.empty or "close" not in df.columns or "date" not in df.columns:
            return pd.DataFrame(columns=["date", "close"])
        return df[["date", "close"]]

    @staticmethod
    def _fetch_yfinance_prices(symbol: str, start: date, end: date) -> pd.DataFrame:
        """Fetch daily closes via yfinance, trying TWSE then TPEx listings."""
        for market_type in ("TW", "TWO"):
            yf_symbol = normalize_symbol(symbol, market_type)
            try:
                # yfinance treats end as exclusive
                hist = yf.Ticker(yf_symbol).history(start=start, end=end + timedelta(days=1))
            except Exception as e:
                raise PriceFetchError(symbol, f"yfinance 查詢失敗 ({e})")

            if not hist.empty:
                return pd.DataFrame({
                    "date": [idx.strftime("%Y-%m-%d") for idx in hist.index],
                    "close": hist["Close"].to_numpy(),
                })
            logger.debug(f"No yfinance history for {yf_symbol}")

        return pd.DataFrame(columns=["date", "close"])

    @staticmethod
    def get_daily_prices(symbol: str, start: date, end: date) -> pd.DataFrame:
        """
        Fetch daily closing prices over a date range.

        Args:
            symbol: Taiwan stock symbol (e.g., "2330")
            start: First date of the range
            end: Last date of the range (inclusive)

        Returns:
            DataFrame with 'date' and 'close' columns sorted by date;
            rows without a positive close are dropped

        Raises:
            PriceFetchError: If the provider request fails
        """
        symbol = clean_symbol(symbol)
        provider = get_settings().price_provider

        if provider == "yfinance":
            df = MarketDataService._fetch_yfinance_prices(symbol, start, end)
        else:
            df = MarketDataService._fetch_finmind_prices(symbol, start, end)

        df = df.copy()
        df["close"] = pd.to_numeric(df["close"], errors="coerce")
        df = df[df["close"] > 0]
        return df.sort_values("date").reset_index(drop=True)

    @staticmethod
    def get_quote(symbol: str, as_of: Optional[date] = None) -> Quote:
        """
        Fetch the latest closing price for a symbol.

        The last daily record's close is the current price and the record
        before it supplies the previous close.

        Args:
            symbol: Taiwan stock symbol
            as_of: End of the lookup window (default: today)

        Returns:
            Quote for the most recent trading day

        Raises:
            PriceFetchError: If the request fails or returns no records
        """
        settings = get_settings()
        symbol = clean_symbol(symbol)
        if not symbol:
            raise PriceFetchError(symbol, "股票代碼不可為空")

        end = as_of or datetime.now().date()
        start = end - timedelta(days=settings.price_lookback_days)

        df = MarketDataService.get_daily_prices(symbol, start, end)
        if df.empty:
            logger.error(f"No price records for {symbol} between {start} and {end}")
            raise PriceFetchError(symbol, "查無近期收盤價資料")

        last = df.iloc[-1]
        prev_close = float(df["close"].iloc[-2]) if len(df) >= 2 else None
        tail = df.tail(settings.price_history_points)

        quote = Quote(
            symbol=symbol,
            price=float(last["close"]),
            trade_date=str(last["date"]),
            prev_close=prev_close,
            history=[{"date": str(d), "price": float(c)} for d, c in zip(tail["date"], tail["close"])],
        )
        logger.info(f"{symbol}: NT${quote.price:.2f} on {quote.trade_date}")
        return quote
