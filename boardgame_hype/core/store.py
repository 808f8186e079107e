# ===== IMPORTS & DEPENDENCIES =====
import copy
import json
import logging
import os
import sqlite3
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from boardgame_hype.config import MAX_BATCH_OPERATIONS

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Snapshot = List[Tuple[str, Document]]
ChangeCallback = Callable[[Snapshot], None]
ErrorCallback = Callable[[Exception], None]
# (kind, collection path, key, payload)
Operation = Tuple[str, str, str, Optional[Document]]


def games_path(user_id: str) -> str:
    return f"users/{user_id}/games"


def settings_path(user_id: str) -> str:
    return f"users/{user_id}/settings"


USERNAMES_PATH = "usernames"

# ===== TYPES & INTERFACES =====
class DocumentNotFound(KeyError):
    """Raised by `update` when the target document does not exist."""


class BatchLimitExceeded(ValueError):
    """Raised when a write batch would hold more than the store allows."""


class ArrayUnion:
    """Update sentinel: appends each value not already present in the stored list."""

    def __init__(self, *values):
        self.values = list(values)


class ArrayRemove:
    """Update sentinel: removes every occurrence of each value from the stored list."""

    def __init__(self, *values):
        self.values = list(values)


def apply_patch(document: Document, fields: Document) -> Document:
    """Merge-patches `fields` into a copy of `document`; fields not named are left as they are."""
    merged = copy.deepcopy(document)
    for name, value in fields.items():
        current = merged.get(name)
        current = list(current) if isinstance(current, list) else []
        if isinstance(value, ArrayUnion):
            for item in value.values:
                if item not in current:
                    current.append(copy.deepcopy(item))
            merged[name] = current
        elif isinstance(value, ArrayRemove):
            merged[name] = [item for item in current if item not in value.values]
        else:
            merged[name] = copy.deepcopy(value)
    return merged


class WriteBatch:
    """Collects up to MAX_BATCH_OPERATIONS writes and applies them atomically on commit()."""

    def __init__(self, store: 'DocumentStore', limit: int = MAX_BATCH_OPERATIONS):
        self._store = store
        self._limit = limit
        self._operations: List[Operation] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._operations)

    def _add(self, operation: Operation) -> 'WriteBatch':
        if self._committed:
            raise RuntimeError("Write batch already committed")
        if len(self._operations) >= self._limit:
            raise BatchLimitExceeded(f"A write batch can hold at most {self._limit} operations")
        self._operations.append(operation)
        return self

    def put(self, path: str, key: str, document: Document) -> 'WriteBatch':
        return self._add(('put', path, key, copy.deepcopy(document)))

    def update(self, path: str, key: str, fields: Document) -> 'WriteBatch':
        return self._add(('update', path, key, dict(fields)))

    def delete(self, path: str, key: str) -> 'WriteBatch':
        return self._add(('delete', path, key, None))

    def commit(self) -> None:
        self._committed = True
        if self._operations:
            self._store._commit(self._operations)

# ===== CORE BUSINESS LOGIC =====
class DocumentStore:
    """
    Per-user document storage: whole-document put, merge-patch update, delete, list,
    atomic batches and push-based change notification per collection path.
    Subclasses only provide reading and atomic application of operations.
    """

    def __init__(self):
        self._watchers: Dict[str, List[Tuple[ChangeCallback, Optional[ErrorCallback]]]] = {}
        self._lock = threading.RLock()

    # --- storage primitives ---
    def _load(self, path: str, key: str) -> Optional[Document]:
        raise NotImplementedError

    def _load_all(self, path: str) -> Snapshot:
        raise NotImplementedError

    def _apply(self, operations: List[Operation]) -> None:
        """Applies all operations or none of them."""
        raise NotImplementedError

    # --- public API ---
    def get(self, path: str, key: str) -> Optional[Document]:
        with self._lock:
            return self._load(path, key)

    def list(self, path: str) -> Snapshot:
        with self._lock:
            return self._load_all(path)

    def put(self, path: str, key: str, document: Document) -> None:
        self._commit([('put', path, key, copy.deepcopy(document))])

    def update(self, path: str, key: str, fields: Document) -> None:
        self._commit([('update', path, key, dict(fields))])

    def delete(self, path: str, key: str) -> None:
        self._commit([('delete', path, key, None)])

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def watch(self, path: str, on_change: ChangeCallback, on_error: Optional[ErrorCallback] = None) -> Callable[[], None]:
        """
        Calls `on_change` with the full collection snapshot now and after every change.
        Returns a function that stops the notifications.
        """
        entry = (on_change, on_error)
        with self._lock:
            self._watchers.setdefault(path, []).append(entry)
        self._notify_one(path, entry)

        def unsubscribe() -> None:
            with self._lock:
                watchers = self._watchers.get(path, [])
                if entry in watchers:
                    watchers.remove(entry)

        return unsubscribe

    # --- internals ---
    def _commit(self, operations: List[Operation]) -> None:
        with self._lock:
            self._apply(operations)
        for path in {operation[1] for operation in operations}:
            self._notify(path)

    def _notify(self, path: str) -> None:
        with self._lock:
            watchers = list(self._watchers.get(path, []))
        for entry in watchers:
            self._notify_one(path, entry)

    def _notify_one(self, path: str, entry: Tuple[ChangeCallback, Optional[ErrorCallback]]) -> None:
        on_change, on_error = entry
        try:
            on_change(self.list(path))
        except Exception as e:
            if on_error is None:
                logger.error(f"[{self.__class__.__name__}] Watcher for '{path}' failed: {e}", exc_info=True)
            else:
                on_error(e)


class InMemoryDocumentStore(DocumentStore):
    """Keeps documents in process memory. Used by tests and one-off runs."""

    def __init__(self):
        super().__init__()
        self._data: Dict[str, Dict[str, Document]] = {}

    def _load(self, path: str, key: str) -> Optional[Document]:
        document = self._data.get(path, {}).get(key)
        return copy.deepcopy(document) if document is not None else None

    def _load_all(self, path: str) -> Snapshot:
        return [(key, copy.deepcopy(doc)) for key, doc in self._data.get(path, {}).items()]

    def _apply(self, operations: List[Operation]) -> None:
        staged = copy.deepcopy(self._data)
        for kind, path, key, payload in operations:
            documents = staged.setdefault(path, {})
            if kind == 'put':
                documents[key] = copy.deepcopy(payload)
            elif kind == 'update':
                if key not in documents:
                    raise DocumentNotFound(f"{path}/{key}")
                documents[key] = apply_patch(documents[key], payload)
            elif kind == 'delete':
                documents.pop(key, None)
        self._data = staged


class SqliteDocumentStore(DocumentStore):
    """Stores JSON documents in a single SQLite table keyed by (collection path, key)."""

    def __init__(self, db_path: str):
        super().__init__()
        self.db_path = db_path
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._create_tables()
        logger.info(f"[{self.__class__.__name__}] Document store initialized at: {self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        """Returns a new database connection."""
        return sqlite3.connect(self.db_path)

    def _create_tables(self) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    path TEXT NOT NULL,
                    doc_key TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (path, doc_key)
                )
            """)
            conn.commit()

    def _load(self, path: str, key: str) -> Optional[Document]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT data FROM documents WHERE path = ? AND doc_key = ?", (path, key)
            ).fetchone()
        return json.loads(row[0]) if row else None

    def _load_all(self, path: str) -> Snapshot:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT doc_key, data FROM documents WHERE path = ? ORDER BY rowid", (path,)
            ).fetchall()
        return [(key, json.loads(data)) for key, data in rows]

    def _apply(self, operations: List[Operation]) -> None:
        conn = self._get_connection()
        try:
            # One transaction for the whole list; any failure rolls everything back
            with conn:
                for kind, path, key, payload in operations:
                    if kind == 'put':
                        conn.execute(
                            "INSERT OR REPLACE INTO documents (path, doc_key, data) VALUES (?, ?, ?)",
                            (path, key, json.dumps(payload, ensure_ascii=False))
                        )
                    elif kind == 'update':
                        row = conn.execute(
                            "SELECT data FROM documents WHERE path = ? AND doc_key = ?", (path, key)
                        ).fetchone()
                        if row is None:
                            raise DocumentNotFound(f"{path}/{key}")
                        merged = apply_patch(json.loads(row[0]), payload)
                        conn.execute(
                            "UPDATE documents SET data = ? WHERE path = ? AND doc_key = ?",
                            (json.dumps(merged, ensure_ascii=False), path, key)
                        )
                    elif kind == 'delete':
                        conn.execute("DELETE FROM documents WHERE path = ? AND doc_key = ?", (path, key))
        finally:
            conn.close()
