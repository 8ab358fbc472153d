# kb_discovery/record_store.py

import copy
import json
import logging
import os
import threading
from typing import Any, Callable, Dict, List, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as RecordValidationError

from kb_discovery.errors import StorageError

logger = logging.getLogger("kb_discovery")

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

USERS = "users"
CATEGORY_MAPPINGS = "category-mappings"
PRODUCTS = "products"
DISCOVERY_QUESTIONS = "discovery-questions"
PROMPTS = "prompts"
DISCOVERY_RESULTS = "discovery-results"


class RecordStore:
    """
    Named JSON collections, one file per collection under `data_dir`.

    Every mutation is read whole collection -> transform in memory -> write whole collection.
    A lock per collection keeps two writers from interleaving bytes in the same file;
    it does NOT protect against lost updates between separate read() and write() calls.
    Use update() when the read-modify-write cycle must run under the lock.
    """

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        os.makedirs(self.data_dir, exist_ok=True)
        self._locks_guard = threading.Lock()
        # collection -> lock
        self._locks: Dict[str, threading.RLock] = {}

    def path_for(self, collection: str) -> str:
        return os.path.join(self.data_dir, f"{collection}.json")

    def _lock_for(self, collection: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(collection)
            if lock is None:
                lock = threading.RLock()
                self._locks[collection] = lock
            return lock

    def read(self, collection: str, default: T) -> T:
        """
        Returns the collection contents, or a copy of `default` when the file is absent,
        cannot be parsed, or holds a different type than `default`. Unreadable data is
        logged, never raised.
        """
        path = self.path_for(collection)
        with self._lock_for(collection):
            if not os.path.exists(path):
                return copy.deepcopy(default)
            try:
                with open(path, "r", encoding="utf-8") as f:
                    value = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"[STORE] Error reading {path}: {e}. Treating as empty.")
                return copy.deepcopy(default)
            if default is not None and not isinstance(value, type(default)):
                logger.warning(
                    f"[STORE] {path} holds {type(value).__name__}, expected {type(default).__name__}. "
                    "Treating as empty."
                )
                return copy.deepcopy(default)
            return value

    def write(self, collection: str, value: Any) -> None:
        path = self.path_for(collection)
        tmp_path = f"{path}.tmp"
        with self._lock_for(collection):
            try:
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(value, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, path)
            except OSError as e:
                logger.error(f"[STORE] Error writing {path}: {e}", exc_info=True)
                if os.path.isfile(tmp_path):
                    os.remove(tmp_path)
                raise StorageError(collection) from e

    def update(self, collection: str, default: T, fn: Callable[[T], T]) -> T:
        """
        Read-modify-write under the collection lock. `fn` receives the current contents
        and returns the new contents, which are written back and returned.
        """
        with self._lock_for(collection):
            current = self.read(collection, default)
            updated = fn(current)
            self.write(collection, updated)
            return updated

    def read_records(self, collection: str, model: Type[M]) -> List[M]:
        """
        A list collection validated record by record. Records that do not fit `model`
        are logged and skipped.
        """
        records: List[M] = []
        for index, raw in enumerate(self.read(collection, [])):
            try:
                records.append(model.model_validate(raw))
            except RecordValidationError as e:
                logger.warning(
                    f"[STORE] Skipping record {index} of '{collection}': "
                    f"{e.error_count()} validation error(s)"
                )
        return records
