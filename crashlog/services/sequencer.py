"""
Numbering Sequencer
===================
Assigns the per-bug ``number`` of each new occurrence.

Guarantees:
    - Strictly increasing per bug, in creation order.
    - Never reused: the counter is a high-water mark that deletions do not
      touch, so deleting occurrence #2 of 3 still gives the next one #4.
    - No duplicates under concurrent writers: allocation is serialized per bug
      by a local lock AND committed with compare-and-set against the store,
      so it stays correct even when several processes share one store.

Lock order is always store transaction first, then the per-bug lock.
``next_number`` joins (or opens) a store transaction before it takes the
per-bug lock, so callers outside a transaction cannot invert it.

Contention on a single bug is rare, so a lost compare-and-set just re-reads
and retries until it wins. SEQUENCER_MAX_RETRIES > 0 caps the loop for
deployments that would rather fail the report with SequenceContentionError
than spin during an event storm; the default of 0 never gives up.
"""
import itertools
import logging
import threading
from typing import Dict

from crashlog.core.config import SEQUENCER_MAX_RETRIES
from crashlog.core.errors import SequenceContentionError
from crashlog.services.store import InMemoryStore

logger = logging.getLogger(__name__)


class NumberSequencer:
    """Per-bug "read-max, increment, write" allocator."""

    def __init__(self, store: InMemoryStore, max_retries: int = SEQUENCER_MAX_RETRIES) -> None:
        self.store = store
        self.max_retries = max(0, max_retries)
        self._locks: Dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, bug_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(bug_id)
            if lock is None:
                lock = self._locks[bug_id] = threading.Lock()
            return lock

    def next_number(self, bug_id: int) -> int:
        """
        Allocate the next occurrence number for ``bug_id``.

        Call it inside the store transaction that persists the occurrence,
        exactly once per occurrence; otherwise the allocation commits on its
        own.

        Raises
        ------
        SequenceContentionError
            If a retry ceiling is configured and every attempt lost a race.
        """
        attempts = itertools.count(1) if not self.max_retries else range(1, self.max_retries + 1)
        with self.store.transaction(), self._lock_for(bug_id):
            for attempt in attempts:
                current = self.store.read_counter(bug_id)
                if self.store.compare_and_set_counter(bug_id, current, current + 1):
                    if attempt > 1:
                        logger.info("Bug %s: number %d allocated after %d attempts", bug_id, current + 1, attempt)
                    return current + 1
                logger.debug("Bug %s: counter moved past %d, retrying", bug_id, current)

        logger.error("Bug %s: number allocation exhausted %d attempts", bug_id, self.max_retries)
        raise SequenceContentionError(bug_id, self.max_retries)
