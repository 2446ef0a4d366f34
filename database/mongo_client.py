# database/mongo_client.py
"""
MongoDB client and record operations for the stock price checker.
Handles the `stocks` collection: one document per uppercase ticker holding the
like counter and the fingerprints of visitors who already liked it.
"""

import os, sys
import logging
from typing import Any, Tuple
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from shared.contracts import StockRecord
from errors import StorageFailure
from helper_functions import short_fingerprint

logger = logging.getLogger(__name__)

_STOCKS_COLL = "stocks"


def connect() -> Tuple[MongoClient, Any]:
    """
    Establishes connection to MongoDB and returns client and database handle

    Returns:
        Tuple[MongoClient, Database]: MongoDB client and database object
    """
    MONGO_URI = os.getenv('MONGO_URI', 'mongodb://localhost:27017/')
    timeout_ms = int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000"))
    if os.getenv("ENV") == "test":
        db_name = os.getenv("TEST_DB_NAME", "test_stock_price_checker")
    else:
        db_name = os.getenv("STOCK_DB", "stock_price_checker")
        # Safety: Prevent test code from accidentally hitting prod
        if "pytest" in sys.modules and "test" not in db_name.lower():
            raise RuntimeError(
                f"Refusing to use prod DB '{db_name}' during test run. "
                f"Set ENV=test or TEST_DB_NAME."
            )
    client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=timeout_ms)
    db = client[db_name]
    return client, db


def initialize_indexes(db: Any) -> None:
    """
    Creates the unique index on stocks.stock

    CRITICAL: record_like's conditional upsert needs it to keep one document per symbol.
    """
    db[_STOCKS_COLL].create_index(
        [("stock", 1)],
        name="stock_unique_idx",
        unique=True,
    )


def ping(db: Any) -> None:
    try:
        db.command("ping")
    except PyMongoError as exc:
        raise StorageFailure(f"Database unavailable: {exc}") from exc


def find_or_create(db: Any, symbol: str) -> StockRecord:
    """
    Case-insensitive lookup of a stock record.

    Returns the stored record, or a zero-valued one for a never-seen symbol.
    The new record is not persisted; it is written on its first like.

    Raises:
        StorageFailure: If the read fails.
    """
    symbol = symbol.upper()
    try:
        doc = db[_STOCKS_COLL].find_one({"stock": symbol}, {"_id": 0})
    except PyMongoError as exc:
        logger.error(f"Failed to read stock record {symbol}: {exc}")
        raise StorageFailure(f"Failed to read stock record for {symbol}") from exc

    if doc is None:
        return StockRecord(symbol=symbol)
    return StockRecord.from_document(doc)


def record_like(db: Any, record: StockRecord, fingerprint: str) -> Tuple[StockRecord, bool]:
    """
    Applies one like from a visitor, at most once per (symbol, fingerprint).

    The membership test and the increment run as a single conditional update
    on the server, so concurrent likes from different visitors cannot lose an
    update and repeated likes from one visitor never double count.

    Args:
        db: MongoDB database handle
        record: Record returned by find_or_create
        fingerprint: Visitor fingerprint (hashed address)

    Returns:
        Tuple[StockRecord, bool]: The current record and whether the like was applied

    Raises:
        StorageFailure: If the write fails.
    """
    if fingerprint in record.liked_by:
        return record, False

    coll = db[_STOCKS_COLL]
    query = {"stock": record.symbol, "ips": {"$ne": fingerprint}}
    update = {"$inc": {"likes": 1}, "$push": {"ips": fingerprint}}
    try:
        try:
            doc = coll.find_one_and_update(
                query, update, projection={"_id": 0},
                upsert=True, return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Document exists already: either it holds this fingerprint, or a
            # concurrent first like created it. Retry without upsert.
            doc = coll.find_one_and_update(
                query, update, projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            )
            if doc is None:
                current = coll.find_one({"stock": record.symbol}, {"_id": 0})
                logger.info(
                    f"Like for {record.symbol} from {short_fingerprint(fingerprint)} already recorded"
                )
                return (StockRecord.from_document(current) if current else record), False
    except PyMongoError as exc:
        logger.error(f"Failed to record like for {record.symbol}: {exc}")
        raise StorageFailure(f"Failed to record like for {record.symbol}") from exc

    logger.info(f"Like recorded for {record.symbol} from {short_fingerprint(fingerprint)}")
    return StockRecord.from_document(doc), True
