# helper_functions.py
import hashlib
import ipaddress
import logging
import re
from typing import Any, Iterable, List, Optional

from shared.contracts import MAX_TICKER_LEN, TickerList
from errors import MalformedInput, MissingAddress

logger = logging.getLogger(__name__)

# Allowed ticker characters: letters, digits, dot, hyphen
_TICKER_PATTERN = re.compile(r"^[A-Za-z0-9.\-]+$")
_TRUTHY_LIKE_STRINGS = ("true", "1")

MAX_SYMBOLS_PER_REQUEST = 2


def normalize_ip(address: Optional[str]) -> str:
    """
    Unwraps IPv4-mapped IPv6 addresses (e.g. '::ffff:203.0.113.7' -> '203.0.113.7').
    Any other address is returned as-is.

    Raises:
        MissingAddress: If no address is available.
    """
    if address is None or not str(address).strip():
        raise MissingAddress("Unable to determine client address")
    address = str(address).strip()
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return address
    if ip.version == 6 and ip.ipv4_mapped is not None:
        return str(ip.ipv4_mapped)
    return address


def hash_ip(address: str) -> str:
    """One-way SHA-256 hex digest of an address; never store the address itself."""
    return hashlib.sha256(address.encode("utf-8")).hexdigest()


def visitor_fingerprint(address: Optional[str]) -> str:
    return hash_ip(normalize_ip(address))


def parse_like_flag(value: Any) -> bool:
    """
    Maps the accepted truthy encodings of the `like` query parameter to a bool.

    Truthy: "true", "1", 1, True. Everything else, including None, is False.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value == 1
    if isinstance(value, str):
        return value in _TRUTHY_LIKE_STRINGS
    return False


def normalize_and_validate_ticker(raw: Any) -> str:
    """
    Trims and uppercases a ticker symbol, enforcing the allowed character set
    and MAX_TICKER_LEN.

    Raises:
        MalformedInput: On empty, overlong or invalid symbols.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedInput("Stock symbol is required")
    symbol = raw.strip().upper()
    if len(symbol) > MAX_TICKER_LEN:
        raise MalformedInput(f"Stock symbol too long: {symbol[:MAX_TICKER_LEN]}...")
    if not _TICKER_PATTERN.match(symbol):
        raise MalformedInput(f"Invalid stock symbol: {symbol}")
    return symbol


def normalize_symbols(values: Iterable[Any]) -> TickerList:
    """
    Validates the list of requested symbols. Exactly one or two are accepted;
    order is preserved because rel_likes is paired by position.
    """
    raw_values = list(values or [])
    if not raw_values:
        raise MalformedInput("Query parameter 'stock' is required")
    if len(raw_values) > MAX_SYMBOLS_PER_REQUEST:
        raise MalformedInput(
            f"At most {MAX_SYMBOLS_PER_REQUEST} stocks can be compared, got {len(raw_values)}"
        )
    return [normalize_and_validate_ticker(v) for v in raw_values]


def compute_relative_likes(likes: List[int]) -> List[int]:
    """rel_likes for a pair: each symbol's likes minus the other's."""
    if len(likes) != 2:
        raise ValueError(f"Relative likes need exactly two counts, got {len(likes)}")
    first, second = likes
    return [first - second, second - first]


def compose_stock_response(stock_data: List[dict]) -> dict:
    """
    Shapes the per-symbol results into the public envelope.

    One symbol keeps raw likes; two symbols swap likes for rel_likes.
    """
    if len(stock_data) == 1:
        return {"stockData": stock_data[0]}

    rel_likes = compute_relative_likes([item["likes"] for item in stock_data])
    return {
        "stockData": [
            {"stock": item["stock"], "price": item["price"], "rel_likes": rel}
            for item, rel in zip(stock_data, rel_likes)
        ]
    }


def short_fingerprint(fingerprint: Optional[str]) -> str:
    # Log-safe prefix
    return (fingerprint or "")[:8]
