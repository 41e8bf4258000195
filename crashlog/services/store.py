"""
In-Memory Store
===============
Reference implementation of the storage contract the core relies on.

Guarantees:
    - Atomic single-record writes: records are deep-copied on the way in and
      on the way out, so a caller mutating a fetched object changes nothing
      until it saves.
    - Serializable transactions: ``transaction()`` holds the store lock for
      the whole unit of work. Nested transactions on the same thread join the
      outer one.
    - Rollback: every write inside a transaction journals the previous value;
      an exception restores all of them in reverse order.
    - Post-commit callbacks registered with ``after_commit`` run once the
      outermost transaction commits, outside the lock. They are discarded on
      rollback.

Counters:
    The per-bug occurrence counter is its own record (not a Bug field) so that
    saving a stale Bug copy can never move it backwards.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from crashlog.core.errors import BugNotFound, LookupTableNotFound, OccurrenceNotFound
from crashlog.models.bug import Bug, Environment, Project
from crashlog.models.notification_threshold import NotificationThreshold
from crashlog.models.obfuscation_map import ObfuscationMap
from crashlog.models.occurrence import Occurrence
from crashlog.models.source_map import SourceMap
from crashlog.models.symbolication import Symbolication

logger = logging.getLogger(__name__)

_MISSING = object()


class _Transaction:
    def __init__(self) -> None:
        self.journal: List[Tuple[dict, object, object]] = []
        self.callbacks: List[Callable[[], None]] = []
        self.depth = 0


class InMemoryStore:
    """Thread-safe record store with journaled transactions."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._local = threading.local()
        self._ids: Dict[str, int] = {}

        self._projects: Dict[int, Project] = {}
        self._environments: Dict[int, Environment] = {}
        self._bugs: Dict[int, Bug] = {}
        self._occurrences: Dict[int, Occurrence] = {}
        self._counters: Dict[int, int] = {}
        self._thresholds: Dict[int, NotificationThreshold] = {}

        self._symbolications: Dict[int, Symbolication] = {}
        self._source_maps: Dict[int, SourceMap] = {}
        self._source_map_keys: Dict[Tuple[Optional[int], str], int] = {}
        self._obfuscation_maps: Dict[int, ObfuscationMap] = {}

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def _current(self) -> Optional[_Transaction]:
        return getattr(self._local, "tx", None)

    @contextmanager
    def transaction(self) -> Iterator["InMemoryStore"]:
        with self._lock:
            tx = self._current()
            outermost = tx is None
            if outermost:
                tx = _Transaction()
                self._local.tx = tx
            tx.depth += 1
            try:
                yield self
            except BaseException:
                if outermost:
                    self._rollback(tx)
                    self._local.tx = None
                else:
                    tx.depth -= 1
                raise
            tx.depth -= 1
            if not outermost:
                return
            self._local.tx = None

        for callback in tx.callbacks:
            callback()

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` after the current transaction commits (or now, if none)."""
        tx = self._current()
        if tx is None:
            callback()
        else:
            tx.callbacks.append(callback)

    def _rollback(self, tx: _Transaction) -> None:
        logger.debug("Rolling back %d write(s)", len(tx.journal))
        for table, key, previous in reversed(tx.journal):
            if previous is _MISSING:
                table.pop(key, None)
            else:
                table[key] = previous

    def _write(self, table: dict, key, value) -> None:
        with self._lock:
            tx = self._current()
            if tx is not None:
                tx.journal.append((table, key, table.get(key, _MISSING)))
            if value is _MISSING:
                table.pop(key, None)
            else:
                table[key] = value

    def _next_id(self, kind: str) -> int:
        with self._lock:
            self._ids[kind] = self._ids.get(kind, 0) + 1
            return self._ids[kind]

    # ------------------------------------------------------------------
    # Projects / environments / bugs
    # ------------------------------------------------------------------
    def add_project(self, project: Project) -> Project:
        project = project.model_copy(update={"id": self._next_id("project")})
        self._write(self._projects, project.id, project.model_copy(deep=True))
        return project

    def get_project(self, project_id: int) -> Optional[Project]:
        found = self._projects.get(project_id)
        return found.model_copy(deep=True) if found else None

    def save_project(self, project: Project) -> None:
        self._write(self._projects, project.id, project.model_copy(deep=True))

    def add_environment(self, environment: Environment) -> Environment:
        environment = environment.model_copy(update={"id": self._next_id("environment")})
        self._write(self._environments, environment.id, environment.model_copy(deep=True))
        return environment

    def get_environment(self, environment_id: Optional[int]) -> Optional[Environment]:
        found = self._environments.get(environment_id)
        return found.model_copy(deep=True) if found else None

    def save_environment(self, environment: Environment) -> None:
        self._write(self._environments, environment.id, environment.model_copy(deep=True))

    def add_bug(self, bug: Bug) -> Bug:
        bug = bug.model_copy(update={"id": self._next_id("bug")})
        self._write(self._bugs, bug.id, bug.model_copy(deep=True))
        return bug

    def get_bug(self, bug_id: int) -> Bug:
        found = self._bugs.get(bug_id)
        if found is None:
            raise BugNotFound(bug_id)
        return found.model_copy(deep=True)

    def save_bug(self, bug: Bug) -> None:
        if bug.id not in self._bugs:
            raise BugNotFound(bug.id)
        self._write(self._bugs, bug.id, bug.model_copy(deep=True))

    # ------------------------------------------------------------------
    # Occurrences
    # ------------------------------------------------------------------
    def add_occurrence(self, occurrence: Occurrence) -> Occurrence:
        occurrence = occurrence.model_copy(update={"id": self._next_id("occurrence")})
        self._write(self._occurrences, occurrence.id, occurrence.model_copy(deep=True))
        return occurrence

    def get_occurrence(self, occurrence_id: int) -> Occurrence:
        found = self._occurrences.get(occurrence_id)
        if found is None:
            raise OccurrenceNotFound(occurrence_id)
        return found.model_copy(deep=True)

    def save_occurrence(self, occurrence: Occurrence) -> None:
        if occurrence.id not in self._occurrences:
            raise OccurrenceNotFound(occurrence.id)
        self._write(self._occurrences, occurrence.id, occurrence.model_copy(deep=True))

    def delete_occurrence(self, occurrence_id: int) -> None:
        if occurrence_id not in self._occurrences:
            raise OccurrenceNotFound(occurrence_id)
        self._write(self._occurrences, occurrence_id, _MISSING)

    def occurrences_for_bug(self, bug_id: int) -> List[Occurrence]:
        with self._lock:
            found = [o for o in self._occurrences.values() if o.bug_id == bug_id]
        return [o.model_copy(deep=True) for o in sorted(found, key=lambda o: o.number or 0)]

    def count_occurrences(self, bug_id: int, since: Optional[datetime] = None) -> int:
        with self._lock:
            return sum(
                1 for o in self._occurrences.values()
                if o.bug_id == bug_id and (since is None or o.occurred_at >= since)
            )

    # ------------------------------------------------------------------
    # Sequence counters
    # ------------------------------------------------------------------
    def read_counter(self, bug_id: int) -> int:
        return self._counters.get(bug_id, 0)

    def compare_and_set_counter(self, bug_id: int, expected: int, new: int) -> bool:
        """Atomically set the counter to ``new`` if it still equals ``expected``."""
        with self._lock:
            if self._counters.get(bug_id, 0) != expected:
                return False
            self._write(self._counters, bug_id, new)
            return True

    # ------------------------------------------------------------------
    # Notification thresholds
    # ------------------------------------------------------------------
    def add_notification_threshold(self, threshold: NotificationThreshold) -> NotificationThreshold:
        threshold = threshold.model_copy(update={"id": self._next_id("threshold")})
        self._write(self._thresholds, threshold.id, threshold.model_copy(deep=True))
        return threshold

    def save_notification_threshold(self, threshold: NotificationThreshold) -> None:
        self._write(self._thresholds, threshold.id, threshold.model_copy(deep=True))

    def thresholds_for_bug(self, bug_id: int) -> List[NotificationThreshold]:
        with self._lock:
            return [t.model_copy(deep=True) for t in self._thresholds.values() if t.bug_id == bug_id]

    # ------------------------------------------------------------------
    # Lookup tables
    # ------------------------------------------------------------------
    # Tables are immutable once registered; they are shared, not copied.
    def add_symbolication(self, symbolication: Symbolication) -> Symbolication:
        symbolication.id = self._next_id("symbolication")
        self._write(self._symbolications, symbolication.id, symbolication)
        return symbolication

    def get_symbolication(self, symbolication_id: Optional[int]) -> Optional[Symbolication]:
        return self._symbolications.get(symbolication_id)

    def add_source_map(self, source_map: SourceMap, environment_id: Optional[int], revision: str) -> SourceMap:
        source_map.id = self._next_id("source_map")
        self._write(self._source_maps, source_map.id, source_map)
        self._write(self._source_map_keys, (environment_id, revision), source_map.id)
        return source_map

    def get_source_map(self, source_map_id: int) -> SourceMap:
        found = self._source_maps.get(source_map_id)
        if found is None:
            raise LookupTableNotFound(f"Source map {source_map_id} not found")
        return found

    def find_source_map(self, environment_id: Optional[int], revision: str) -> Optional[SourceMap]:
        source_map_id = self._source_map_keys.get((environment_id, revision))
        return self._source_maps.get(source_map_id) if source_map_id else None

    def add_obfuscation_map(self, namespace: ObfuscationMap) -> ObfuscationMap:
        namespace.id = self._next_id("obfuscation_map")
        self._write(self._obfuscation_maps, namespace.id, namespace)
        return namespace

    def get_obfuscation_map(self, obfuscation_map_id: int) -> ObfuscationMap:
        found = self._obfuscation_maps.get(obfuscation_map_id)
        if found is None:
            raise LookupTableNotFound(f"Obfuscation map {obfuscation_map_id} not found")
        return found

    def find_obfuscation_map(self, deploy_id: Optional[str]) -> Optional[ObfuscationMap]:
        """Most recently registered map for ``deploy_id``."""
        if deploy_id is None:
            return None
        with self._lock:
            matches = [m for m in self._obfuscation_maps.values() if m.deploy_id == deploy_id]
        return max(matches, key=lambda m: m.id) if matches else None
