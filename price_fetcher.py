# price_fetcher.py
"""
Client for the external quote provider.

One GET per call, no caching and no retry. Transport failures surface as
UpstreamUnavailable; a response without a usable latestPrice surfaces as
InvalidQuoteData.
"""
import os, logging, math, requests
from numbers import Real
from urllib.parse import quote

from errors import InvalidQuoteData, UpstreamUnavailable

logger = logging.getLogger(__name__)

QUOTE_API_URL = os.getenv(
    "QUOTE_API_URL",
    "https://stock-price-checker-proxy.freecodecamp.rocks/v1/stock/{symbol}/quote",
)
_TIMEOUT = float(os.getenv("QUOTE_HTTP_TIMEOUT_SECONDS", "10"))

# Per-process session for connection pooling. No Retry adapter is mounted.
_session_singleton = requests.Session()


def build_quote_url(symbol: str) -> str:
    return QUOTE_API_URL.format(symbol=quote(symbol, safe=""))


def extract_latest_price(data, symbol: str) -> float:
    """
    Pulls latestPrice out of a decoded quote body.

    The proxy answers plain strings such as "Unknown symbol" for bad tickers,
    so anything that is not an object with a positive numeric latestPrice is rejected.
    """
    if not isinstance(data, dict):
        raise InvalidQuoteData(f"Invalid stock data for {symbol}")
    price = data.get("latestPrice")
    if isinstance(price, bool) or not isinstance(price, Real) or not price:
        raise InvalidQuoteData(f"Invalid stock data for {symbol}")
    if not math.isfinite(price):
        raise InvalidQuoteData(f"Invalid stock data for {symbol}")
    return float(price)


def get_stock_price(symbol: str, timeout: float = None) -> float:
    """
    Fetches the latest price for an uppercase ticker symbol.

    Raises:
        UpstreamUnavailable: timeout, connection error or a 5xx from the provider.
        InvalidQuoteData: non-JSON body or missing/invalid latestPrice.
    """
    url = build_quote_url(symbol)
    try:
        r = _session_singleton.get(url, timeout=timeout or _TIMEOUT)
    except requests.exceptions.RequestException as exc:
        logger.error(f"Quote provider unreachable for {symbol}: {exc}")
        raise UpstreamUnavailable(f"Quote provider unavailable for {symbol}") from exc

    if r.status_code >= 500:
        logger.error(f"Quote provider returned {r.status_code} for {symbol}")
        raise UpstreamUnavailable(f"Quote provider unavailable for {symbol}")

    try:
        data = r.json()
    except ValueError as exc:
        logger.warning(f"Quote provider returned a non-JSON body for {symbol}")
        raise InvalidQuoteData(f"Invalid stock data for {symbol}") from exc

    price = extract_latest_price(data, symbol)
    logger.debug(f"Fetched latest price for {symbol}: {price}")
    return price
