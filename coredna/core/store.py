"""
coredna/core/store.py

Namespaced key-value store behind the provider registry, usage ledger and
credit balance. Every user owns one namespace; values are JSON documents.

Two implementations share one interface:
- InMemoryStore: process-local dict (default, tests)
- SqlStore: SQLAlchemy Core over the kv_records table
"""

import copy
import json
import logging
import threading
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import select, insert, update, delete
from sqlalchemy.engine import Engine

from coredna.core.config import settings
from coredna.core.database import kv_records, session_scope, create_all_tables, get_engine
from coredna.core.errors import ValidationError

logger = logging.getLogger("coredna")


def _json_copy(value: Any) -> Any:
    """Detach a value from the caller and reject anything that is not JSON."""
    try:
        return json.loads(json.dumps(value))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Store values must be JSON-serializable: {exc}") from exc


class KeyValueStore(Protocol):
    """
    Storage contract for per-user records.

    Implementations must keep values JSON-compatible and must never hand out
    references that let callers mutate stored state in place.
    """

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        ...

    def set(self, namespace: str, key: str, value: Any) -> None:
        ...

    def delete(self, namespace: str, key: str) -> None:
        ...

    def append(self, namespace: str, key: str, item: Any) -> None:
        """Append one item to the list stored at key (created if missing)."""
        ...

    def keys(self, namespace: str) -> List[str]:
        ...


class InMemoryStore:
    """Process-local store. A lock keeps dict mutations whole across threads."""

    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        with self._lock:
            bucket = self._data.get(namespace, {})
            if key not in bucket:
                return default
            return copy.deepcopy(bucket[key])

    def set(self, namespace: str, key: str, value: Any) -> None:
        stored = _json_copy(value)
        with self._lock:
            self._data.setdefault(namespace, {})[key] = stored

    def delete(self, namespace: str, key: str) -> None:
        with self._lock:
            bucket = self._data.get(namespace)
            if bucket is not None:
                bucket.pop(key, None)
                if not bucket:
                    del self._data[namespace]

    def append(self, namespace: str, key: str, item: Any) -> None:
        stored = _json_copy(item)
        with self._lock:
            bucket = self._data.setdefault(namespace, {})
            current = bucket.get(key)
            if current is None:
                bucket[key] = [stored]
            elif isinstance(current, list):
                current.append(stored)
            else:
                raise ValidationError(f"Cannot append to non-list record '{key}'")

    def keys(self, namespace: str) -> List[str]:
        with self._lock:
            return list(self._data.get(namespace, {}).keys())

    def clear(self) -> None:
        """Drop every namespace. FOR TESTING ONLY."""
        with self._lock:
            self._data.clear()


class SqlStore:
    """
    SQLAlchemy-backed store.

    append() is a read-modify-write inside one transaction; concurrent
    appends from separate processes are not serialized beyond what the
    database isolation level provides.
    """

    def __init__(self, engine: Optional[Engine] = None, create_tables: bool = True):
        self.engine = engine or get_engine()
        if create_tables:
            create_all_tables(self.engine)

    def _row(self, session, namespace: str, key: str):
        return session.execute(
            select(kv_records.c.id, kv_records.c.value)
            .where(kv_records.c.namespace == namespace)
            .where(kv_records.c.key == key)
        ).first()

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        with session_scope(self.engine) as session:
            row = self._row(session, namespace, key)
        if row is None:
            return default
        return row.value

    def set(self, namespace: str, key: str, value: Any) -> None:
        stored = _json_copy(value)
        with session_scope(self.engine) as session:
            row = self._row(session, namespace, key)
            if row is None:
                session.execute(insert(kv_records).values(namespace=namespace, key=key, value=stored))
            else:
                session.execute(update(kv_records).where(kv_records.c.id == row.id).values(value=stored))

    def delete(self, namespace: str, key: str) -> None:
        with session_scope(self.engine) as session:
            session.execute(
                delete(kv_records)
                .where(kv_records.c.namespace == namespace)
                .where(kv_records.c.key == key)
            )

    def append(self, namespace: str, key: str, item: Any) -> None:
        stored = _json_copy(item)
        with session_scope(self.engine) as session:
            row = self._row(session, namespace, key)
            if row is None:
                session.execute(insert(kv_records).values(namespace=namespace, key=key, value=[stored]))
                return
            current = row.value
            if current is None:
                current = []
            if not isinstance(current, list):
                raise ValidationError(f"Cannot append to non-list record '{key}'")
            session.execute(
                update(kv_records).where(kv_records.c.id == row.id).values(value=current + [stored])
            )

    def keys(self, namespace: str) -> List[str]:
        with session_scope(self.engine) as session:
            rows = session.execute(
                select(kv_records.c.key)
                .where(kv_records.c.namespace == namespace)
                .order_by(kv_records.c.id)
            ).all()
        return [row.key for row in rows]


def build_store(backend: Optional[str] = None) -> KeyValueStore:
    """
    Build the configured store implementation.

    - STORE_BACKEND=sql uses DATABASE_URL through SqlStore
    - anything else uses InMemoryStore
    """
    choice = (backend or settings.STORE_BACKEND or "memory").lower()
    if choice == "sql":
        logger.info("[store] using SQL store")
        return SqlStore()
    return InMemoryStore()


# Global store instance (lazy initialization)
_store_instance: Optional[KeyValueStore] = None


def get_store() -> KeyValueStore:
    """
    Get the singleton store instance.

    This is the primary API that all consumers should use.
    """
    global _store_instance
    if _store_instance is None:
        _store_instance = build_store()
    return _store_instance


def set_store(store: KeyValueStore) -> None:
    """Install a specific store (tests, embedding applications)."""
    global _store_instance
    _store_instance = store


def reset_store() -> None:
    """
    Reset the store instance.

    FOR TESTING ONLY - forces re-initialization on next get_store() call.
    """
    global _store_instance
    _store_instance = None
