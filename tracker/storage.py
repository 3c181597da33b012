"""
JSON Document Store

Records are kept in JSON documents on disk:

    {"version": "1.0", "updated_at": "...", "<collection>": {key: record}}

ShardedDocumentStore keeps one such document per shard (one per
application), so writes to different applications share neither a file
nor a lock.

CONSTRAINTS:
- Writes go to a temp file, are fsync'd, then renamed over the document
- In-memory state changes only after the document write succeeded, so a
  failed write leaves nothing half-applied
- A corrupt document is an error, never an empty collection
- key_lock(key) serializes multi-step read-validate-write sequences on one
  key without blocking other keys; idle key locks are dropped
"""

import copy
import json
import logging
import os
import threading
import weakref
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from .errors import UnavailableError

logger = logging.getLogger("storage")

STORE_VERSION = "1.0"

Record = Dict[str, Any]


class JsonDocumentStore:
    """Keyed record collection persisted as a single JSON document."""

    def __init__(self, path: Path, collection: str):
        self._path = Path(path)
        self._collection = collection
        self._records: Optional[Dict[str, Record]] = None
        self._lock = threading.RLock()
        self._key_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._key_locks_guard = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # -------------------------------------------------------------------------
    # Locking
    # -------------------------------------------------------------------------

    def key_lock(self, key: str) -> threading.Lock:
        """Lock dedicated to one key. Kept only while someone holds a reference."""
        with self._key_locks_guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    @contextmanager
    def locked(self, key: str) -> Iterator[None]:
        lock = self.key_lock(key)
        with lock:
            yield

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _load(self) -> Dict[str, Record]:
        if self._records is not None:
            return self._records

        if not self._path.exists():
            logger.debug(f"No document at {self._path}, starting fresh")
            self._records = {}
            return self._records

        try:
            with open(self._path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load {self._path}: {e}")
            raise UnavailableError(
                f"Failed to load {self._collection} store",
                details={"path": str(self._path), "error": str(e)},
            )

        records = data.get(self._collection) if isinstance(data, dict) else None
        if not isinstance(records, dict):
            logger.error(f"Document {self._path} has no '{self._collection}' mapping")
            raise UnavailableError(
                f"Corrupt {self._collection} store",
                details={"path": str(self._path)},
            )

        self._records = records
        logger.debug(f"Loaded {len(records)} {self._collection} from {self._path}")
        return self._records

    def _write(self, records: Dict[str, Record]) -> None:
        data = {
            "version": STORE_VERSION,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            self._collection: records,
        }
        temp_file = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            temp_file.replace(self._path)
        except OSError as e:
            logger.error(f"Failed to save {self._path}: {e}")
            raise UnavailableError(
                f"Failed to save {self._collection} store",
                details={"path": str(self._path), "error": str(e)},
            )

    def _commit(self, key: str, record: Record) -> None:
        records = self._load()
        staged = dict(records)
        staged[key] = record
        self._write(staged)
        self._records = staged

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, key: str) -> Optional[Record]:
        with self._lock:
            record = self._load().get(key)
            return copy.deepcopy(record) if record is not None else None

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._load()

    def values(self) -> List[Record]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._load().values()]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def insert(self, key: str, record: Record) -> bool:
        """Store a new record. Returns False if the key is already taken."""
        with self._lock:
            if key in self._load():
                return False
            self._commit(key, copy.deepcopy(record))
            return True

    def mutate(self, key: str, fn: Callable[[Record], Any]) -> Any:
        """
        Apply fn to a copy of the record and persist the result atomically.

        fn may raise to abort; nothing is written in that case. Returns
        fn's return value, or raises KeyError if the key is absent.
        """
        with self._lock:
            current = self._load().get(key)
            if current is None:
                raise KeyError(key)
            working = copy.deepcopy(current)
            result = fn(working)
            self._commit(key, working)
            return result


class ShardedDocumentStore:
    """
    One JsonDocumentStore per shard, stored as <directory>/<shard>.json.

    Shard names must be safe file stems; callers validate them.
    """

    def __init__(self, directory: Path, collection: str):
        self._directory = Path(directory)
        self._collection = collection
        self._shards: Dict[str, JsonDocumentStore] = {}
        self._guard = threading.Lock()

    def shard(self, name: str, create: bool = False) -> Optional[JsonDocumentStore]:
        """
        Store for one shard.

        Without create, returns None for a shard that has no document yet,
        so lookups of unknown names leave nothing behind.
        """
        with self._guard:
            store = self._shards.get(name)
            if store is None:
                path = self._directory / f"{name}.json"
                if not create and not path.exists():
                    return None
                store = JsonDocumentStore(path, self._collection)
                self._shards[name] = store
            return store

    def names(self) -> List[str]:
        """Every shard with a document on disk or opened for writing."""
        with self._guard:
            names = set(self._shards)
        if self._directory.exists():
            names.update(p.stem for p in self._directory.glob("*.json"))
        return sorted(names)
