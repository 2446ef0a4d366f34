# services/stock_price_service.py

"""
Stock price service business logic
Fans out over the requested symbols, applies like deduplication and shapes
the response.

This module follows the service architecture patterns:
- Uses database.mongo_client for all database operations
- Uses price_fetcher for the external quote provider
- All-or-nothing: the first failing symbol aborts the whole request
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional

from database import mongo_client
import price_fetcher
from helper_functions import compose_stock_response, short_fingerprint
from errors import MissingAddress

logger = logging.getLogger(__name__)


def _run_per_symbol(func: Callable[[int, str], Any], symbols: List[str]) -> List[Any]:
    """
    Runs func(index, symbol) concurrently for every symbol and returns the
    results in input order.

    The first exception wins: pending work is cancelled and the exception is
    re-raised; results of the other symbols are discarded.
    """
    if len(symbols) == 1:
        return [func(0, symbols[0])]

    results: List[Any] = [None] * len(symbols)
    executor = ThreadPoolExecutor(max_workers=len(symbols))
    future_to_index = {
        executor.submit(func, i, symbol): i for i, symbol in enumerate(symbols)
    }
    try:
        for future in as_completed(future_to_index):
            results[future_to_index[future]] = future.result()
    except Exception:
        # Do not wait for in-flight siblings; their results are discarded
        executor.shutdown(wait=False, cancel_futures=True)
        raise
    executor.shutdown(wait=True)
    return results


def fetch_prices(symbols: List[str]) -> List[float]:
    return _run_per_symbol(lambda _i, symbol: price_fetcher.get_stock_price(symbol), symbols)


def resolve_likes(db: Any, symbols: List[str], like: bool, fingerprint: Optional[str]) -> List[int]:
    """
    Finds or creates each record and, when `like` is set, records the visitor's like.

    Returns the like count per symbol, in input order.
    """
    if like and not fingerprint:
        raise MissingAddress("Unable to determine client address")

    def _resolve(_i: int, symbol: str) -> int:
        record = mongo_client.find_or_create(db, symbol)
        if like:
            record, applied = mongo_client.record_like(db, record, fingerprint)
            if not applied:
                logger.info(
                    f"Duplicate like ignored for {symbol} from {short_fingerprint(fingerprint)}"
                )
        return record.likes

    return _run_per_symbol(_resolve, symbols)


def get_stock_data(
    db: Any,
    symbols: List[str],
    like: bool = False,
    fingerprint: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Builds the stockData payload for one or two validated, uppercase symbols.

    Business Logic:
    - Prices for all symbols are fetched first, concurrently. If any price
      lookup fails the request fails before the store is touched, so an
      upstream failure never mutates a record.
    - Records are then resolved concurrently; likes are deduplicated per
      visitor fingerprint by the store.
    - One symbol: {"stockData": {"stock", "price", "likes"}}
    - Two symbols: {"stockData": [{"stock", "price", "rel_likes"}, ...]} in
      input order, with rel_likes = own likes - other likes.

    Args:
        db: MongoDB database handle
        symbols: One or two normalized ticker symbols
        like: Whether the visitor likes the requested stocks
        fingerprint: Visitor fingerprint, required when like is True

    Raises:
        InvalidQuoteData, UpstreamUnavailable: From the price lookup
        StorageFailure: From the record store
        MissingAddress: If like is True without a fingerprint
    """
    logger.info(f"Fetching stock data for {symbols} (like={like})")

    prices = fetch_prices(symbols)
    likes = resolve_likes(db, symbols, like, fingerprint)

    stock_data = [
        {"stock": symbol, "price": price, "likes": count}
        for symbol, price, count in zip(symbols, prices, likes)
    ]
    return compose_stock_response(stock_data)
