# tests/integration/test_mongo_like_dedup.py
"""
Integration tests for like deduplication against a real MongoDB.
Uses TEST_MONGO_URI / MONGO_URI and a dedicated test database; skipped when
no server is reachable.
"""
import os
from concurrent.futures import ThreadPoolExecutor

import pytest
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from database.mongo_client import find_or_create, record_like, initialize_indexes
from helper_functions import visitor_fingerprint


@pytest.fixture
def test_db_connection():
    uri = os.getenv("TEST_MONGO_URI", os.getenv("MONGO_URI", "mongodb://localhost:27017/"))
    db_name = os.getenv("TEST_DB_NAME", "test_stock_price_checker")
    client = MongoClient(uri, serverSelectionTimeoutMS=1000)
    try:
        client.admin.command("ping")
    except PyMongoError as e:
        client.close()
        pytest.skip(f"MongoDB not reachable at {uri}: {e}")
    db = client[db_name]
    db.stocks.delete_many({})
    initialize_indexes(db)
    try:
        yield client, db
    finally:
        db.stocks.delete_many({})
        client.close()


class TestLikeDedupIntegration:
    def test_unseen_symbol_is_not_persisted_on_read(self, test_db_connection):
        client, db = test_db_connection
        record = find_or_create(db, "goog")
        assert record.likes == 0
        assert db.stocks.count_documents({}) == 0

    def test_same_visitor_likes_once(self, test_db_connection):
        client, db = test_db_connection
        fp = visitor_fingerprint("203.0.113.7")

        record, applied = record_like(db, find_or_create(db, "GOOG"), fp)
        assert applied is True and record.likes == 1

        # Fresh read: dedup happens in memory
        record, applied = record_like(db, find_or_create(db, "GOOG"), fp)
        assert applied is False and record.likes == 1

        # Stale read: dedup happens in the conditional update
        stale = find_or_create(db, "GOOG").model_copy(update={"liked_by": set(), "likes": 0})
        record, applied = record_like(db, stale, fp)
        assert applied is False
        assert record.likes == 1

        doc = db.stocks.find_one({"stock": "GOOG"})
        assert doc["likes"] == 1
        assert doc["ips"] == [fp]

    def test_concurrent_likes_from_distinct_visitors(self, test_db_connection):
        client, db = test_db_connection
        fingerprints = [visitor_fingerprint(f"10.0.0.{i}") for i in range(1, 31)]

        def _like(fp):
            return record_like(db, find_or_create(db, "GOOG"), fp)[1]

        with ThreadPoolExecutor(max_workers=10) as executor:
            applied = list(executor.map(_like, fingerprints))

        assert all(applied)
        assert db.stocks.count_documents({"stock": "GOOG"}) == 1
        doc = db.stocks.find_one({"stock": "GOOG"})
        assert doc["likes"] == 30
        assert len(set(doc["ips"])) == 30

    def test_concurrent_repeat_likes_from_one_visitor(self, test_db_connection):
        client, db = test_db_connection
        fp = visitor_fingerprint("198.51.100.23")

        with ThreadPoolExecutor(max_workers=8) as executor:
            applied = list(executor.map(
                lambda _: record_like(db, find_or_create(db, "MSFT"), fp)[1], range(16)
            ))

        assert applied.count(True) == 1
        assert db.stocks.find_one({"stock": "MSFT"})["likes"] == 1
