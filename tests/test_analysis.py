"""Tests for the quote + AI analysis pipeline."""

import json

import pytest

from llm_engine import LLMResponse
from models import AnalysisOutline
from models.stock_analysis import NO_ADVICE_TEXT, NOT_AVAILABLE, DEFAULT_VOLATILITY
from prompts import RATE_LIMIT_ADVISORY, PORTFOLIO_EMPTY_TEXT, ADVICE_EMPTY_TEXT
from services.analysis import AnalysisService, merge_analysis
from services.common import PriceFetchError


STRUCTURED = {
    "companyName": "台灣積體電路製造股份有限公司",
    "marketCap": "15.5兆",
    "eps": "32.34",
    "pe": "18.5",
    "currentPrice": 999.0,
    "volatility": 0.28,
    "advice": "逢低分批布局",
    "aiPrediction": {
        "trendAnalysis": "均線多頭排列",
        "volatilityAnalysis": "波動率處於低檔",
        "keyLevels": "5%: 560, 50%: 610, 95%: 660",
        "scenarios": {
            "optimistic": "AI 需求強勁，650-680",
            "neutral": "區間整理，590-620",
            "pessimistic": "庫存調整，540-570",
        },
        "conclusion": "中性情境機率最高，置信度 60%",
    },
}


@pytest.fixture
def service(mock_llm_client, mock_market_data, mock_sleep):
    return AnalysisService(
        llm_client=mock_llm_client,
        market_data=mock_market_data,
        sleep=mock_sleep,
        two_stage=True,
        call_delay=2.0,
    )


class TestPriceFailure:

    def test_price_error_prevents_ai_calls(self, service, mock_market_data, mock_llm_client):
        mock_market_data.get_quote.side_effect = PriceFetchError("2330", "查無近期收盤價資料")

        with pytest.raises(PriceFetchError):
            service.analyze_stock("2330")

        mock_llm_client.generate.assert_not_called()

    def test_missing_quote_prevents_ai_calls(self, service, mock_market_data, mock_llm_client):
        mock_market_data.get_quote.return_value = None

        with pytest.raises(PriceFetchError) as exc_info:
            service.analyze_stock("2330")

        assert "2330" in str(exc_info.value)
        mock_llm_client.generate.assert_not_called()


class TestTwoStage:

    def test_merges_quote_with_structured_fields(self, service, mock_llm_client, mock_sleep):
        mock_llm_client.generate.side_effect = [
            LLMResponse(text="研究筆記...", grounding_urls=["https://news.example/a", "https://news.example/b"]),
            LLMResponse(text=f"```json\n{json.dumps(STRUCTURED, ensure_ascii=False)}\n```"),
        ]

        analysis = service.analyze_stock("2330")

        # Price always comes from the quote, never from the model
        assert analysis.current_price == 600.0
        assert analysis.prev_close == 580.0
        assert analysis.change_percent == pytest.approx((600.0 - 580.0) / 580.0 * 100)
        assert [p.price for p in analysis.history] == [575.0, 580.0, 600.0]

        assert analysis.symbol == "2330"
        assert analysis.company_name == "台灣積體電路製造股份有限公司"
        assert analysis.market_cap == "15.5兆"
        assert analysis.eps == "32.34"
        assert analysis.pe == "18.5"
        assert analysis.volatility == 0.28
        assert analysis.advice == "逢低分批布局"
        assert analysis.ai_prediction.trend_analysis == "均線多頭排列"
        assert analysis.ai_prediction.scenarios.pessimistic == "庫存調整，540-570"
        assert analysis.ai_prediction.conclusion.startswith("中性情境")
        assert analysis.grounding_urls == ["https://news.example/a", "https://news.example/b"]

        mock_sleep.assert_called_once_with(2.0)

    def test_research_is_grounded_and_structuring_is_not(self, service, mock_llm_client):
        mock_llm_client.generate.side_effect = [
            LLMResponse(text="研究筆記"),
            LLMResponse(text="{}"),
        ]

        service.analyze_stock("2330")

        research_call, structuring_call = mock_llm_client.generate.call_args_list
        assert research_call.kwargs.get("search_query")
        assert "NT$600.0" in research_call.args[0]
        assert structuring_call.kwargs.get("search_query") is None
        assert "研究筆記" in structuring_call.args[0]

    def test_structuring_requests_schema_output(self, service, mock_llm_client):
        mock_llm_client.generate.side_effect = [
            LLMResponse(text="研究筆記", grounding_urls=["https://news.example/a"]),
            LLMResponse(text="", data={
                "company_name": "台積電",
                "eps": "32.34",
                "volatility": 0.25,
                "advice": "續抱",
                "ai_prediction": {"scenarios": {"neutral": "區間整理"}},
            }),
        ]

        analysis = service.analyze_stock("2330")

        research_call, structuring_call = mock_llm_client.generate.call_args_list
        assert research_call.kwargs.get("schema") is None
        assert structuring_call.kwargs.get("schema") is AnalysisOutline
        assert analysis.company_name == "台積電"
        assert analysis.eps == "32.34"
        assert analysis.volatility == 0.25
        assert analysis.advice == "續抱"
        assert analysis.ai_prediction.scenarios.neutral == "區間整理"
        assert analysis.ai_prediction.scenarios.optimistic == NO_ADVICE_TEXT
        assert analysis.grounding_urls == ["https://news.example/a"]

    def test_empty_research_skips_structuring(self, service, mock_llm_client, mock_sleep):
        mock_llm_client.generate.side_effect = [LLMResponse(text="  ")]

        analysis = service.analyze_stock("2330")

        assert mock_llm_client.generate.call_count == 1
        mock_sleep.assert_not_called()
        assert analysis.advice == NO_ADVICE_TEXT
        assert analysis.current_price == 600.0

    def test_malformed_json_yields_placeholders(self, service, mock_llm_client):
        mock_llm_client.generate.side_effect = [
            LLMResponse(text="研究筆記"),
            LLMResponse(text="抱歉，我無法提供 JSON。"),
        ]

        analysis = service.analyze_stock("2330")

        assert analysis.company_name == "2330"
        assert analysis.eps == NOT_AVAILABLE
        assert analysis.pe == NOT_AVAILABLE
        assert analysis.volatility == DEFAULT_VOLATILITY
        assert analysis.advice == NO_ADVICE_TEXT
        assert analysis.ai_prediction.scenarios.neutral == NO_ADVICE_TEXT


class TestNarrativeFailure:

    def test_ai_error_degrades_to_placeholder(self, service, mock_llm_client):
        mock_llm_client.generate.side_effect = RuntimeError("500 Internal error")

        analysis = service.analyze_stock("2330")

        assert analysis.current_price == 600.0
        assert analysis.advice == NO_ADVICE_TEXT
        assert analysis.grounding_urls == []

    def test_structuring_error_keeps_research_sources(self, service, mock_llm_client):
        mock_llm_client.generate.side_effect = [
            LLMResponse(text="研究筆記", grounding_urls=["https://news.example/a"]),
            RuntimeError("connection reset"),
        ]

        analysis = service.analyze_stock("2330")

        assert analysis.advice == NO_ADVICE_TEXT
        assert analysis.grounding_urls == ["https://news.example/a"]

    def test_structuring_rate_limit_keeps_research_sources(self, service, mock_llm_client):
        mock_llm_client.generate.side_effect = [
            LLMResponse(text="研究筆記", grounding_urls=["https://news.example/a"]),
            RuntimeError("429 Too Many Requests"),
        ]

        analysis = service.analyze_stock("2330")

        assert analysis.advice == RATE_LIMIT_ADVISORY
        assert analysis.grounding_urls == ["https://news.example/a"]

    def test_rate_limit_surfaces_advisory_without_retry(self, service, mock_llm_client):
        mock_llm_client.generate.side_effect = RuntimeError("429 RESOURCE_EXHAUSTED")

        analysis = service.analyze_stock("2330")

        assert analysis.advice == RATE_LIMIT_ADVISORY
        assert mock_llm_client.generate.call_count == 1


def test_single_stage_makes_one_grounded_call(mock_llm_client, mock_market_data, mock_sleep):
    service = AnalysisService(
        llm_client=mock_llm_client,
        market_data=mock_market_data,
        sleep=mock_sleep,
        two_stage=False,
        call_delay=2.0,
    )
    mock_llm_client.generate.return_value = LLMResponse(
        text=f"好的：{json.dumps(STRUCTURED, ensure_ascii=False)} 以上。",
        grounding_urls=["https://news.example/a"],
    )

    analysis = service.analyze_stock("2330")

    assert mock_llm_client.generate.call_count == 1
    assert mock_llm_client.generate.call_args.kwargs.get("search_query")
    mock_sleep.assert_not_called()
    assert analysis.advice == "逢低分批布局"
    assert analysis.grounding_urls == ["https://news.example/a"]


def test_missing_api_key_is_not_hidden(mock_market_data):
    """Configuration errors propagate instead of degrading to placeholders."""
    service = AnalysisService(market_data=mock_market_data, sleep=lambda _: None)

    with pytest.raises(ValueError, match="API key"):
        service.analyze_stock("2330")


class TestPortfolioAdvice:

    def test_prompt_lists_holdings_and_cash(self, service, mock_llm_client):
        mock_llm_client.generate.return_value = LLMResponse(text="  建議保留三成現金。 ")
        items = [
            {'symbol': "2330", 'shares': 1000, 'current_price': 600.0},
            {'symbol': "2454", 'shares': 100, 'current_price': 1250.5},
        ]

        advice = service.get_portfolio_advice(items, 250000)

        assert advice == "建議保留三成現金。"
        prompt = mock_llm_client.generate.call_args.args[0]
        assert "2330: 1000 股 @ NT$600" in prompt
        assert "2454: 100 股 @ NT$1250.5" in prompt
        assert "NT$250,000" in prompt
        assert "NT$250,000。\n請擔任" in prompt

    def test_empty_portfolio(self, service, mock_llm_client):
        mock_llm_client.generate.return_value = LLMResponse(text="先建立核心持股。")

        service.get_portfolio_advice([], 100000)

        assert PORTFOLIO_EMPTY_TEXT in mock_llm_client.generate.call_args.args[0]

    def test_blank_answer(self, service, mock_llm_client):
        mock_llm_client.generate.return_value = LLMResponse(text="")

        assert service.get_portfolio_advice([], 100000) == ADVICE_EMPTY_TEXT

    def test_failure_returns_error_text(self, service, mock_llm_client):
        mock_llm_client.generate.side_effect = RuntimeError("403 API key not valid")

        advice = service.get_portfolio_advice([], 100000)

        assert advice.startswith("⚠️ 建議生成失敗")
        assert "403 API key not valid" in advice

    def test_rate_limit_returns_advisory(self, service, mock_llm_client):
        mock_llm_client.generate.side_effect = RuntimeError("429 Too Many Requests")

        assert service.get_portfolio_advice([], 100000) == RATE_LIMIT_ADVISORY


class TestVolatility:

    @pytest.mark.parametrize("raw,expected", [
        (0.28, 0.28),
        ("0.28", 0.28),
        ("28%", 0.28),
        ("NaN", DEFAULT_VOLATILITY),
        ("inf", DEFAULT_VOLATILITY),
        (float("nan"), DEFAULT_VOLATILITY),
        (-0.2, DEFAULT_VOLATILITY),
        ("高", DEFAULT_VOLATILITY),
    ])
    def test_model_volatility_is_a_finite_fraction(self, quote, raw, expected):
        analysis = merge_analysis(quote, {"volatility": raw})

        assert analysis.volatility == pytest.approx(expected)
