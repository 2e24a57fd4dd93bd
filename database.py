"""
MongoDB access for the portal.

`db` is the configured pymongo database (None when DATABASE_URL or
DATABASE_NAME are missing). `DocumentStore` is the collection-scoped CRUD
boundary every service goes through: it converts driver failures into
StoreError and fans committed writes out to live subscribers.
"""
import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Tuple

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from config import get_config
from errors import StoreError

logger = logging.getLogger(__name__)

COLLECTIONS = ("users", "products", "quotes", "projects", "settings", "sessions", "password_resets")

Snapshot = List[Dict[str, Any]]
SortSpec = Optional[List[Tuple[str, int]]]


def _connect():
    config = get_config()
    if not config.database_configured:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; database unavailable")
        return None, None
    mongo = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=5000)
    return mongo, mongo[config.DATABASE_NAME]


client, db = _connect()


def new_id() -> str:
    return str(ObjectId())


def to_public(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


def _as_dict(data: Any) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


class Subscription:
    """Handle returned by DocumentStore.subscribe; cancel() stops delivery."""

    def __init__(self, store: "DocumentStore", collection: str, callback: Callable[[Snapshot], None],
                 predicate: Optional[dict], sort: SortSpec):
        self.store = store
        self.collection = collection
        self.callback = callback
        self.predicate = predicate or {}
        self.sort = sort
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self.store._remove_subscription(self)

    def refresh(self) -> None:
        if not self.active:
            return
        try:
            snapshot = self.store.query(self.collection, self.predicate, sort=self.sort)
        except StoreError:
            logger.warning("Skipped snapshot for %s subscriber; store unavailable", self.collection)
            return
        self.deliver(snapshot)

    def deliver(self, snapshot: Snapshot) -> None:
        try:
            self.callback(snapshot)
        except Exception:
            logger.exception("Subscriber callback failed for %s", self.collection)


class DocumentStore:
    def __init__(self, database):
        self.db = database
        self._subscribers: Dict[str, List[Subscription]] = defaultdict(list)
        self._lock = threading.RLock()

    @contextmanager
    def _guard(self, operation: str, collection: str):
        try:
            yield
        except PyMongoError as e:
            logger.error("Store %s on %s failed: %s", operation, collection, e)
            raise StoreError(operation=operation, collection=collection) from e

    # ---------- CRUD ----------

    def create(self, collection: str, data: Any) -> str:
        doc = _as_dict(data)
        doc["_id"] = doc.pop("id", None) or new_id()
        with self._guard("create", collection):
            self.db[collection].insert_one(doc)
        self._notify(collection)
        return doc["_id"]

    def upsert(self, collection: str, doc_id: str, data: Any) -> str:
        doc = _as_dict(data)
        doc.pop("id", None)
        doc.pop("_id", None)
        with self._guard("upsert", collection):
            self.db[collection].replace_one({"_id": doc_id}, doc, upsert=True)
        self._notify(collection)
        return doc_id

    def read(self, collection: str, doc_id: str) -> Optional[dict]:
        with self._guard("read", collection):
            doc = self.db[collection].find_one({"_id": doc_id})
        return to_public(doc)

    def find_one(self, collection: str, predicate: dict) -> Optional[dict]:
        with self._guard("find_one", collection):
            doc = self.db[collection].find_one(predicate)
        return to_public(doc)

    def update(self, collection: str, doc_id: str, changes: dict, unset: Optional[List[str]] = None) -> Optional[dict]:
        """Apply `changes` with $set and return the updated document, or None when no document matched."""
        update: Dict[str, Any] = {}
        if changes:
            update["$set"] = changes
        if unset:
            update["$unset"] = {field: "" for field in unset}
        if not update:
            return self.read(collection, doc_id)
        with self._guard("update", collection):
            doc = self.db[collection].find_one_and_update(
                {"_id": doc_id}, update, return_document=ReturnDocument.AFTER
            )
        if doc is not None:
            self._notify(collection)
        return to_public(doc)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._guard("delete", collection):
            res = self.db[collection].delete_one({"_id": doc_id})
        if res.deleted_count:
            self._notify(collection)
        return res.deleted_count > 0

    def delete_many(self, collection: str, predicate: dict) -> int:
        with self._guard("delete_many", collection):
            res = self.db[collection].delete_many(predicate)
        if res.deleted_count:
            self._notify(collection)
        return res.deleted_count

    def query(self, collection: str, predicate: Optional[dict] = None, sort: SortSpec = None) -> Snapshot:
        with self._guard("query", collection):
            cursor = self.db[collection].find(predicate or {})
            if sort:
                cursor = cursor.sort(sort)
            return [to_public(d) for d in cursor]

    def count(self, collection: str, predicate: Optional[dict] = None) -> int:
        with self._guard("count", collection):
            return self.db[collection].count_documents(predicate or {})

    def list_collections(self) -> List[str]:
        with self._guard("list_collections", "*"):
            return self.db.list_collection_names()

    # ---------- Live subscriptions ----------

    def subscribe(self, collection: str, callback: Callable[[Snapshot], None],
                  predicate: Optional[dict] = None, sort: SortSpec = None) -> Subscription:
        """
        Deliver the matching snapshot now and again after every committed
        write to `collection`. Snapshots for one subscriber arrive in commit
        order; nothing is promised across collections.
        """
        sub = Subscription(self, collection, callback, predicate, sort)
        with self._lock:
            snapshot = self.query(collection, predicate, sort=sort)
            self._subscribers[collection].append(sub)
            sub.deliver(snapshot)
        return sub

    def _remove_subscription(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.collection, [])
            if sub in subs:
                subs.remove(sub)

    def _notify(self, collection: str) -> None:
        with self._lock:
            for sub in list(self._subscribers.get(collection, [])):
                sub.refresh()


_store: Optional[DocumentStore] = None


def get_store() -> DocumentStore:
    global _store
    if _store is None:
        if db is None:
            raise StoreError("Database not configured")
        _store = DocumentStore(db)
    return _store


def set_store(store: Optional[DocumentStore]) -> None:
    global _store
    _store = store
