# shared/contracts.py
"""
This module defines the Pydantic models that serve as the formal data contracts
for the stock price checker service.

These models ensure data consistency, provide automatic validation, and act as
living documentation for the records we persist and the payloads we return.
"""

from typing import Any, Dict, List, Set, TypeAlias
from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_TICKER_LEN = 10

# --- Contract 1: TickerList ---
TickerList: TypeAlias = List[str]
"""A list of one or two stock ticker symbols (e.g., ["GOOG", "MSFT"])."""


# --- Contract 2: StockRecord ---
class StockRecord(BaseModel):
    """
    Per-symbol like state as stored in the `stocks` collection.

    Mongo field names are kept from the existing document shape
    (`stock`, `likes`, `ips`); the Python attribute names are aliased.
    """
    model_config = ConfigDict(populate_by_name=True)

    symbol: str = Field(..., alias="stock")
    likes: int = Field(0, ge=0)
    liked_by: Set[str] = Field(default_factory=set, alias="ips")

    @field_validator("symbol")
    @classmethod
    def _uppercase_symbol(cls, v: str) -> str:
        return v.upper()

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "StockRecord":
        return cls.model_validate({
            "stock": doc.get("stock"),
            "likes": doc.get("likes") or 0,
            "ips": doc.get("ips") or [],
        })


# --- Contract 3: StockData ---
class StockDataSingle(BaseModel):
    """Payload for a single-symbol request."""
    stock: str
    price: float
    likes: int


class StockDataRelative(BaseModel):
    """Payload item for a two-symbol comparison; raw likes are replaced by the difference."""
    stock: str
    price: float
    rel_likes: int


# --- Contract 4: Response envelopes ---
class StockPriceResponse(BaseModel):
    stockData: StockDataSingle


class StockPricePairResponse(BaseModel):
    stockData: List[StockDataRelative] = Field(..., min_length=2, max_length=2)


class ApiError(BaseModel):
    """Uniform error envelope returned by every failing request."""
    error: str
