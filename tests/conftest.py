# tests/conftest.py
"""
Pytest configuration and shared fixtures for stock price service tests
Centralizes the test client, an in-memory record store, price stubs and sample data
"""

import os
import sys
import tempfile
import threading
from typing import Dict, Any
from unittest.mock import MagicMock

import pytest

# Ensure local imports resolve when running from repo root
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Logging setup runs at app import; keep log files out of /app during tests
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="stock_price_logs_"))
os.environ.setdefault("ENV", "test")

from shared.contracts import StockRecord

# -------------------------------------------------------------------
# Constants shared across tests
# -------------------------------------------------------------------

@pytest.fixture(scope="session")
def test_constants() -> Dict[str, Any]:
    return {
        "PRICES": {"GOOG": 786.9, "MSFT": 62.3, "AAPL": 189.25},
        "VISITOR_A": "203.0.113.7",
        "VISITOR_B": "198.51.100.23",
        "MAPPED_VISITOR_A": "::ffff:203.0.113.7",
    }

# -------------------------------------------------------------------
# Environment helpers
# -------------------------------------------------------------------

@pytest.fixture(autouse=True)
def ensure_test_env(monkeypatch):
    """Standardize DB env for tests and fix Docker hostname vs localhost."""
    in_docker = os.path.exists("/.dockerenv")
    mongo_uri = "mongodb://mongodb:27017" if in_docker else "mongodb://localhost:27017"
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("MONGO_URI", mongo_uri)
    monkeypatch.setenv("TEST_DB_NAME", "test_stock_price_checker")
    yield

# -------------------------------------------------------------------
# In-memory store with the same test-and-set semantics as mongo_client
# -------------------------------------------------------------------

class InMemoryStockStore:
    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.writes = 0
        self._lock = threading.Lock()

    def _to_record(self, symbol):
        doc = self.docs[symbol]
        return StockRecord(symbol=symbol, likes=doc["likes"], liked_by=set(doc["ips"]))

    def find_or_create(self, db, symbol):
        symbol = symbol.upper()
        with self._lock:
            if symbol not in self.docs:
                return StockRecord(symbol=symbol)
            return self._to_record(symbol)

    def record_like(self, db, record, fingerprint):
        with self._lock:
            doc = self.docs.setdefault(record.symbol, {"likes": 0, "ips": []})
            if fingerprint in doc["ips"]:
                return self._to_record(record.symbol), False
            doc["likes"] += 1
            doc["ips"].append(fingerprint)
            self.writes += 1
            return self._to_record(record.symbol), True


@pytest.fixture
def store(monkeypatch):
    from database import mongo_client
    fake = InMemoryStockStore()
    monkeypatch.setattr(mongo_client, "find_or_create", fake.find_or_create)
    monkeypatch.setattr(mongo_client, "record_like", fake.record_like)
    return fake


@pytest.fixture
def stub_prices(monkeypatch, test_constants):
    """Serves prices from test_constants; unknown symbols raise InvalidQuoteData."""
    import price_fetcher
    from errors import InvalidQuoteData
    calls = []

    def _fake_price(symbol, timeout=None):
        calls.append(symbol)
        if symbol not in test_constants["PRICES"]:
            raise InvalidQuoteData(f"Invalid stock data for {symbol}")
        return test_constants["PRICES"][symbol]

    monkeypatch.setattr(price_fetcher, "get_stock_price", _fake_price)
    return calls

# -------------------------------------------------------------------
# Flask app and client fixtures
# -------------------------------------------------------------------

@pytest.fixture(scope="session")
def app():
    from app import app as flask_app
    flask_app.config["TESTING"] = True
    yield flask_app


@pytest.fixture
def mock_db() -> MagicMock:
    return MagicMock()


@pytest.fixture
def client(app, mock_db):
    from app import register_db
    register_db(app, mock_db)
    yield app.test_client()
    app.extensions.pop("stock_db", None)
