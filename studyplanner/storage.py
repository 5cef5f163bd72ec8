"""
Persistent key-value storage for the planner's collections.

This module manages one JSON file per collection key inside the data directory:

    <data_dir>/subjects.json
    <data_dir>/tasks.json
    ...

Contract:
- read(key, default) hydrates a key on first access; missing or malformed files
  fall back to `default`, which is persisted immediately (a malformed file is
  first copied to `<key>.json.bak`; an unreadable one is left untouched)
- write(key, value) is write-through: memory first, then disk, then subscribers
- a failed disk read or write never crashes the application; the in-memory value is kept
  and the failure is recorded in `store.errors`
- batch() groups writes so cascades become visible (and durable) all at once

Several processes may share one data directory. They are not coordinated:
the last write wins and observers are only notified inside the writing process.
"""

from __future__ import annotations

import copy
import json
import logging
import shutil
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Set

from studyplanner.config import default_data_dir
from studyplanner.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]
Validator = Callable[[Any], Any]

_MISSING = object()


class CollectionStore:
    def __init__(
        self,
        data_dir: str | Path | None = None,
        on_error: Optional[Callable[[PersistenceError], None]] = None,
    ) -> None:
        self.data_dir = Path(data_dir) if data_dir is not None else default_data_dir()
        self.on_error = on_error
        self.errors: List[PersistenceError] = []
        # keys whose existing file could not be used and were replaced by their default
        self.fallbacks: Set[str] = set()

        self._values: Dict[str, Any] = {}
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

        # batch state: original values of touched keys, keys waiting for flush
        self._batch_depth = 0
        self._snapshot: Dict[str, Any] = {}
        self._dirty: List[str] = []

    def path_for(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    # ------------------------------------------------------------------
    # read / write
    # ------------------------------------------------------------------

    def read(self, key: str, default: Any, validate: Optional[Validator] = None) -> Any:
        """
        Return the current value of `key` (a deep copy).

        On first access the persisted file is loaded. It must be valid JSON of the same
        top-level type as `default` and pass `validate` (which may normalize the value
        and raises ValueError to reject it); otherwise `default` is used and persisted.
        """
        if key not in self._values:
            self._hydrate(key, default, validate)
        return copy.deepcopy(self._values[key])

    def write(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Value for '{key}' is not JSON-serializable: {e}") from e

        if self._batch_depth:
            if key not in self._snapshot:
                self._snapshot[key] = copy.deepcopy(self._values.get(key, _MISSING))
            self._values[key] = json.loads(payload)
            if key not in self._dirty:
                self._dirty.append(key)
            return

        self._values[key] = json.loads(payload)
        self._persist(key, payload)
        self._notify(key)

    def update(self, key: str, default: Any, fn: Callable[[Any], Any], validate: Optional[Validator] = None) -> Any:
        """
        Read-modify-write helper. All collection mutations go through here.
        """
        new_value = fn(self.read(key, default, validate))
        self.write(key, new_value)
        return new_value

    # ------------------------------------------------------------------
    # observers
    # ------------------------------------------------------------------

    def subscribe(self, key: str, callback: Listener) -> Callable[[], None]:
        self._listeners[key].append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners[key]:
                self._listeners[key].remove(callback)

        return unsubscribe

    # ------------------------------------------------------------------
    # batches
    # ------------------------------------------------------------------

    @contextmanager
    def batch(self) -> Iterator["CollectionStore"]:
        """
        Apply all writes of the block together.

        Inside the block reads already see the new values. If the block raises, every
        touched key is restored and nothing is persisted or announced to subscribers.
        Nested batches join the outermost one.
        """
        self._batch_depth += 1
        try:
            yield self
        except BaseException:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                self._rollback()
            raise
        self._batch_depth -= 1
        if self._batch_depth == 0:
            self._commit()

    def _rollback(self) -> None:
        for key, old in self._snapshot.items():
            if old is _MISSING:
                self._values.pop(key, None)
            else:
                self._values[key] = old
        logger.debug("Batch rolled back: %s", ", ".join(self._snapshot))
        self._snapshot = {}
        self._dirty = []

    def _commit(self) -> None:
        keys = self._dirty
        self._snapshot = {}
        self._dirty = []
        for key in keys:
            self._persist(key, json.dumps(self._values[key], indent=2, ensure_ascii=False))
        for key in keys:
            self._notify(key)

    def backup(self, key: str) -> Optional[Path]:
        """
        Copy the file of `key` to `<key>.json.bak`, replacing an older backup.

        Returns the backup path, or None when there is no file or the copy failed
        (the failure is recorded like a failed write).
        """
        path = self.path_for(key)
        target = path.with_name(path.name + ".bak")
        try:
            shutil.copyfile(path, target)
        except FileNotFoundError:
            return None
        except OSError as e:
            self._record(PersistenceError(key, target, str(e), action="back up"))
            return None
        return target

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _hydrate(self, key: str, default: Any, validate: Optional[Validator]) -> None:
        path = self.path_for(key)

        # First run: nothing stored yet
        if not path.exists():
            self._values[key] = copy.deepcopy(default)
            self._persist(key, json.dumps(default, indent=2, ensure_ascii=False))
            return

        # Unreadable (permissions, a directory in the way): use the default but leave the file alone
        try:
            raw = path.read_bytes()
        except OSError as e:
            self._record(PersistenceError(key, path, str(e), action="read"))
            self._values[key] = copy.deepcopy(default)
            self.fallbacks.add(key)
            return

        try:
            value = json.loads(raw.decode("utf-8"))
            if not isinstance(value, type(default)):
                raise ValueError(f"expected {type(default).__name__}, got {type(value).__name__}")
            if validate is not None:
                value = validate(value)
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
            logger.warning("Ignoring malformed data for '%s' in %s (%s); using defaults", key, path, e)
            self._values[key] = copy.deepcopy(default)
            self.fallbacks.add(key)
            # the default only replaces the file once its content is saved aside
            if self.backup(key) is not None:
                self._persist(key, json.dumps(default, indent=2, ensure_ascii=False))
            return

        self._values[key] = value

    def _persist(self, key: str, payload: str) -> bool:
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(payload, encoding="utf-8")
        except OSError as e:
            self._record(PersistenceError(key, path, str(e)))
            return False
        return True

    def _record(self, err: PersistenceError) -> None:
        self.errors.append(err)
        logger.warning("%s (in-memory state kept)", err)
        if self.on_error is not None:
            self.on_error(err)

    def _notify(self, key: str) -> None:
        # copy the list: listeners may unsubscribe while being called
        for callback in list(self._listeners.get(key, ())):
            callback(copy.deepcopy(self._values[key]))
