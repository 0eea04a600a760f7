"""
Durable key-value store for the E-Learning data layer
SQLite-backed document storage with change notifications
"""

import sqlite3
import logging
import json
import time
import threading
import weakref
from typing import Any, Callable, Dict, List, Optional
from pathlib import Path

from api.models import DataLayerError, ErrorKind
from utils.logging_config import log_store_operation

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str, Optional[Any]], None]

# Stores opened on the same database file, keyed by resolved path.
# A write through one store is announced to the others, never to itself.
_open_stores: Dict[str, 'weakref.WeakSet[KeyValueStore]'] = {}
_registry_lock = threading.Lock()


class StoreError(DataLayerError):
    """Raised when the persistent store cannot be read or written"""

    kind = ErrorKind.STORE


class KeyValueStore:
    """
    Durable, path-scoped key-value storage of JSON documents

    Every value is serialized to JSON text and kept in a single SQLite
    table. Instances opened on the same file behave like browser tabs
    sharing one origin: each write raises a change notification (key and
    new value) in every other instance.
    """

    def __init__(self, db_path: str = "./data/elearning.db", quota_bytes: int = 5 * 1024 * 1024):
        """
        Initialize the store

        Args:
            db_path: Path to SQLite database file
            quota_bytes: Maximum total serialized size (0 disables the check)
        """
        self.db_path = db_path
        self.quota_bytes = quota_bytes
        self._listeners: List[ChangeListener] = []

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

        self._registry_key = str(Path(db_path).resolve())
        with _registry_lock:
            _open_stores.setdefault(self._registry_key, weakref.WeakSet()).add(self)

        logger.info(f"Key-value store initialized at {db_path}")

    def _init_database(self):
        """Create the documents table"""
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open store at {self.db_path}: {e}") from e

    # ------------------------------------------------------------------
    # change notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: ChangeListener):
        """Register a callback receiving (key, new_value) for writes made elsewhere"""
        self._listeners.append(listener)

    def _receive_change(self, key: str, value: Optional[Any]):
        for listener in list(self._listeners):
            try:
                listener(key, value)
            except Exception as e:
                logger.warning(f"Change listener failed for key '{key}': {e}")

    def _announce_change(self, key: str, value: Optional[Any]):
        with _registry_lock:
            peers = [store for store in _open_stores.get(self._registry_key, ()) if store is not self]
        for peer in peers:
            peer._receive_change(key, value)

    # ------------------------------------------------------------------
    # raw text access
    # ------------------------------------------------------------------

    def get_item(self, key: str) -> Optional[str]:
        """Return the serialized document under key, or None"""
        start_time = time.time()
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            log_store_operation(logger, 'GET', key, 0, time.time() - start_time, False, str(e))
            raise StoreError(f"Error reading from storage ({key}): {e}") from e

        value = row[0] if row else None
        log_store_operation(logger, 'GET', key, len(value or ''), time.time() - start_time)
        return value

    def set_item(self, key: str, value: str):
        """Store serialized text under key, enforcing the quota"""
        start_time = time.time()
        try:
            with sqlite3.connect(self.db_path) as conn:
                if self.quota_bytes:
                    used = conn.execute(
                        "SELECT COALESCE(SUM(LENGTH(key) + LENGTH(value)), 0) FROM kv_store WHERE key != ?",
                        (key,)
                    ).fetchone()[0]
                    if used + len(key) + len(value) > self.quota_bytes:
                        raise StoreError(
                            f"Storage quota exceeded writing '{key}' "
                            f"({used + len(key) + len(value)} > {self.quota_bytes} bytes)"
                        )
                conn.execute("""
                    INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                """, (key, value))
                conn.commit()
        except sqlite3.Error as e:
            log_store_operation(logger, 'SET', key, len(value), time.time() - start_time, False, str(e))
            raise StoreError(f"Error saving to storage ({key}): {e}") from e
        except StoreError as e:
            log_store_operation(logger, 'SET', key, len(value), time.time() - start_time, False, str(e))
            raise

        log_store_operation(logger, 'SET', key, len(value), time.time() - start_time)

    def remove_item(self, key: str):
        """Delete key (no-op when absent)"""
        start_time = time.time()
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.commit()
        except sqlite3.Error as e:
            log_store_operation(logger, 'REMOVE', key, 0, time.time() - start_time, False, str(e))
            raise StoreError(f"Error removing from storage ({key}): {e}") from e

        log_store_operation(logger, 'REMOVE', key, 0, time.time() - start_time)
        self._announce_change(key, None)

    def clear(self):
        """Delete every key"""
        keys = self.keys()
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("DELETE FROM kv_store")
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Error clearing storage: {e}") from e

        logger.info(f"Cleared {len(keys)} keys from storage")
        for key in keys:
            self._announce_change(key, None)

    def keys(self) -> List[str]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                return [row[0] for row in conn.execute("SELECT key FROM kv_store ORDER BY key")]
        except sqlite3.Error as e:
            raise StoreError(f"Error listing storage keys: {e}") from e

    def has(self, key: str) -> bool:
        return self.get_item(key) is not None

    # ------------------------------------------------------------------
    # JSON documents
    # ------------------------------------------------------------------

    def get_json(self, key: str, default: Any = None) -> Any:
        """
        Read and deserialize the document under key

        Args:
            key: Store key
            default: Value returned when the key is absent

        Raises:
            StoreError: If the store cannot be read or the content is corrupt
        """
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreError(f"Corrupt document under '{key}': {e}") from e

    def set_json(self, key: str, document: Any):
        """Serialize document and store it under key"""
        try:
            serialized = json.dumps(document, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Cannot serialize document for '{key}': {e}") from e

        self.set_item(key, serialized)
        self._announce_change(key, document)

    def get_statistics(self) -> Dict[str, Any]:
        """Key count and total serialized size"""
        try:
            with sqlite3.connect(self.db_path) as conn:
                count, size = conn.execute(
                    "SELECT COUNT(*), COALESCE(SUM(LENGTH(key) + LENGTH(value)), 0) FROM kv_store"
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Error reading storage statistics: {e}") from e

        return {
            'total_keys': count,
            'size_bytes': size,
            'quota_bytes': self.quota_bytes
        }

    def close(self):
        """Stop participating in change notifications"""
        with _registry_lock:
            peers = _open_stores.get(self._registry_key)
            if peers is not None:
                peers.discard(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
