"""Pytest configuration and fixtures."""

import pytest
from unittest.mock import Mock

import db_engine
from config import reload_settings
from llm_engine import LLMClient
from services.market_data import Quote


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every test at its own SQLite file and a clean configuration."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("PRICE_PROVIDER", "finmind")
    monkeypatch.setenv("LLM_MODE", "gemini")
    for key in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY", "FINMIND_TOKEN",
                "OPENAI_API_KEY", "OPENAI_MODEL"):
        monkeypatch.delenv(key, raising=False)

    db_engine.reset_engine()
    settings = reload_settings()
    yield settings
    db_engine.reset_engine()


@pytest.fixture
def db():
    """Create the tables in the per-test database."""
    db_engine.init_db()
    return db_engine.get_engine()


@pytest.fixture
def quote():
    """Authoritative quote for TSMC."""
    return Quote(
        symbol="2330",
        price=600.0,
        trade_date="2024-05-10",
        prev_close=580.0,
        history=[
            {"date": "2024-05-08", "price": 575.0},
            {"date": "2024-05-09", "price": 580.0},
            {"date": "2024-05-10", "price": 600.0},
        ],
    )


@pytest.fixture
def mock_market_data(quote):
    """Market data collaborator returning the TSMC quote."""
    market_data = Mock()
    market_data.get_quote.return_value = quote
    return market_data


@pytest.fixture
def mock_llm_client():
    """LLM client whose responses are set per test via generate.side_effect."""
    return Mock(spec=LLMClient)


@pytest.fixture
def mock_sleep():
    return Mock()
