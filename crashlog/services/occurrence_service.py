"""
Occurrence Service
==================
Orchestrates the occurrence lifecycle on top of the store.

Pipeline for a new report:
    1. Open a store transaction
    2. Allocate ``number`` from the sequencer
    3. Persist the occurrence; set ``bug.first_occurrence`` if still unset
    4. Commit
    5. Publish (occurrence, bug) on the hook bus; the resolution job,
       threshold mail and paging hang off this point

Resolution, truncation and redirection each run in their own transaction and
save only when something actually changed, so running them zero or more times
converges on the same stored state.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from crashlog.core.config import RESOLVE_ON_CREATE
from crashlog.models.backtrace import Thread
from crashlog.models.bug import Bug
from crashlog.models.obfuscation_map import ObfuscationMap
from crashlog.models.occurrence import Occurrence
from crashlog.models.source_map import SourceMap
from crashlog.models.symbolication import Symbolication
from crashlog.services.hooks import HookBus
from crashlog.services.lookup_tables import (
    default_obfuscation_map,
    default_source_map,
    default_symbolication,
)
from crashlog.services.sequencer import NumberSequencer
from crashlog.services.store import InMemoryStore

logger = logging.getLogger(__name__)


class OccurrenceService:
    """Create, resolve, truncate and redirect occurrences."""

    def __init__(
        self,
        store: InMemoryStore,
        sequencer: Optional[NumberSequencer] = None,
        hooks: Optional[HookBus] = None,
        resolve_on_create: bool = RESOLVE_ON_CREATE,
    ) -> None:
        self.store = store
        self.sequencer = sequencer or NumberSequencer(store)
        self.hooks = hooks or HookBus()
        if resolve_on_create:
            self.hooks.subscribe(self._resolve_job)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    def create(
        self,
        bug_id: int,
        occurred_at: datetime,
        client: str = "",
        message: str = "",
        revision: str = "",
        backtraces: Optional[List[Thread]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        symbolication_id: Optional[int] = None,
    ) -> Occurrence:
        """
        Record a new occurrence of ``bug_id``.

        Returns the stored occurrence as it stands after post-commit hooks
        ran (already resolved when RESOLVE_ON_CREATE is on).
        """
        with self.store.transaction():
            occurrence = self.create_in_transaction(
                bug_id,
                occurred_at=occurred_at,
                client=client,
                message=message,
                revision=revision,
                backtraces=backtraces or [],
                metadata=metadata,
                symbolication_id=symbolication_id,
            )
        return self.store.get_occurrence(occurrence.id)

    def create_in_transaction(self, bug_id: int, **payload: Any) -> Occurrence:
        """
        Persist a new occurrence as part of the caller's open transaction.

        Without one, the write commits on its own. Hooks are deferred until
        the outermost transaction commits.
        """
        with self.store.transaction():
            bug = self.store.get_bug(bug_id)
            number = self.sequencer.next_number(bug_id)
            occurrence = self.store.add_occurrence(Occurrence(bug_id=bug_id, number=number, **payload))

            if bug.first_occurrence is None:
                bug.first_occurrence = occurrence.occurred_at
                self.store.save_bug(bug)

            logger.info("Recorded occurrence #%d of bug %s (id=%s)", number, bug_id, occurrence.id)
            self.store.after_commit(lambda: self._committed(occurrence.id))
        return occurrence

    def _committed(self, occurrence_id: int) -> None:
        occurrence = self.store.get_occurrence(occurrence_id)
        bug = self.store.get_bug(occurrence.bug_id)
        self.hooks.publish(occurrence, bug)

    def _resolve_job(self, occurrence: Occurrence, bug: Bug) -> None:
        self.resolve_all(occurrence.id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, occurrence_id: int) -> Occurrence:
        return self.store.get_occurrence(occurrence_id)

    def resolve_redirect_chain(self, occurrence_id: int) -> Occurrence:
        """
        Follow ``redirect_target_id`` to the last occurrence of the chain.

        Stops at the last unvisited occurrence if the chain loops.
        """
        occurrence = self.store.get_occurrence(occurrence_id)
        seen = {occurrence.id}
        while occurrence.redirect_target_id is not None:
            if occurrence.redirect_target_id in seen:
                logger.warning("Redirect cycle detected at occurrence %s", occurrence.id)
                break
            occurrence = self.store.get_occurrence(occurrence.redirect_target_id)
            seen.add(occurrence.id)
        return occurrence

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def _resolve(self, occurrence_id: int, domain: str, apply: Callable[[Occurrence, Bug], bool]) -> Occurrence:
        with self.store.transaction():
            occurrence = self.store.get_occurrence(occurrence_id)
            bug = self.store.get_bug(occurrence.bug_id)
            if apply(occurrence, bug):
                self.store.save_occurrence(occurrence)
                logger.info("Occurrence %s: %s resolved", occurrence_id, domain)
            else:
                logger.debug("Occurrence %s: nothing to %s", occurrence_id, domain)
        return occurrence

    def symbolicate(
        self,
        occurrence_id: int,
        symbolication: Optional[Symbolication] = None,
        include_symbolized: bool = False,
    ) -> Occurrence:
        return self._resolve(
            occurrence_id, "symbolicate",
            lambda o, b: o.symbolicate(
                symbolication if symbolication is not None else default_symbolication(self.store, o),
                include_symbolized,
            ),
        )

    def sourcemap(self, occurrence_id: int, source_map: Optional[SourceMap] = None) -> Occurrence:
        return self._resolve(
            occurrence_id, "sourcemap",
            lambda o, b: o.sourcemap(
                source_map if source_map is not None else default_source_map(self.store, o, b)
            ),
        )

    def deobfuscate(self, occurrence_id: int, namespace: Optional[ObfuscationMap] = None) -> Occurrence:
        return self._resolve(
            occurrence_id, "deobfuscate",
            lambda o, b: o.deobfuscate(
                namespace if namespace is not None else default_obfuscation_map(self.store, b)
            ),
        )

    def resolve_all(self, occurrence_id: int) -> Occurrence:
        """Run all three resolvers with their default tables."""
        self.symbolicate(occurrence_id)
        self.sourcemap(occurrence_id)
        return self.deobfuscate(occurrence_id)

    # ------------------------------------------------------------------
    # Truncation / redirection / deletion
    # ------------------------------------------------------------------
    def truncate(self, occurrence_id: int) -> Occurrence:
        with self.store.transaction():
            occurrence = self.store.get_occurrence(occurrence_id)
            if occurrence.truncate():
                self.store.save_occurrence(occurrence)
                logger.info("Truncated occurrence %s", occurrence_id)
        return occurrence

    def truncate_many(self, occurrence_ids: Iterable[int]) -> int:
        """Truncate every listed occurrence in one transaction; returns how many changed."""
        changed = 0
        with self.store.transaction():
            for occurrence_id in dict.fromkeys(occurrence_ids):
                occurrence = self.store.get_occurrence(occurrence_id)
                if occurrence.truncate():
                    self.store.save_occurrence(occurrence)
                    changed += 1
        logger.info("Batch-truncated %d occurrence(s)", changed)
        return changed

    def redirect(self, occurrence_id: int, target_id: int) -> Occurrence:
        with self.store.transaction():
            occurrence = self.store.get_occurrence(occurrence_id)
            target = self.store.get_occurrence(target_id)
            occurrence.redirect_to(target)
            self.store.save_occurrence(occurrence)
        logger.info("Occurrence %s redirected to %s", occurrence_id, target_id)
        return occurrence

    def delete(self, occurrence_id: int) -> None:
        with self.store.transaction():
            self.store.delete_occurrence(occurrence_id)
        logger.info("Deleted occurrence %s", occurrence_id)
