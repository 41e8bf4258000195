"""
Recategorizer
=============
Moves an occurrence to the bug an external clustering decision picked.

Steps (one store transaction, all-or-nothing):
    1. Ask the BugAssigner for the target bug (same, existing or new)
    2. Create the equivalent occurrence under that bug, fresh number
    3. Redirect the original to it (truncates the original)
    4. Reopen the target bug if it was fixed or fix-deployed

Any exception, including one from the assigner, rolls the whole unit back
and propagates to the caller.
"""
import logging
from typing import Protocol

from crashlog.core.errors import OccurrenceTruncatedError
from crashlog.models.bug import Bug
from crashlog.models.occurrence import Occurrence
from crashlog.services.occurrence_service import OccurrenceService

logger = logging.getLogger(__name__)


class BugAssigner(Protocol):
    """Clustering collaborator: decides which bug an occurrence belongs to."""

    def find_or_create_bug(self, occurrence: Occurrence) -> Bug:
        ...


class FixedBugAssigner:
    """Assigner for a decision that was already made elsewhere."""

    def __init__(self, bug: Bug) -> None:
        self.bug = bug

    def find_or_create_bug(self, occurrence: Occurrence) -> Bug:
        return self.bug


class Recategorizer:
    def __init__(self, occurrences: OccurrenceService, assigner: BugAssigner) -> None:
        self.occurrences = occurrences
        self.store = occurrences.store
        self.assigner = assigner

    def recategorize(self, occurrence_id: int) -> Occurrence:
        """
        Re-file ``occurrence_id`` under the assigner's bug.

        Returns
        -------
        Occurrence
            The newly created occurrence.

        Raises
        ------
        OccurrenceTruncatedError
            The occurrence was already truncated; nothing is left to move.
        """
        with self.store.transaction():
            original = self.store.get_occurrence(occurrence_id)
            if original.truncated:
                raise OccurrenceTruncatedError(occurrence_id)

            target_bug = self.assigner.find_or_create_bug(original)
            # The assigner may hand back a stale or freshly built copy
            target_bug = self.store.get_bug(target_bug.id)

            moved = self.occurrences.create_in_transaction(target_bug.id, **original.copy_payload())

            original.redirect_to(moved)
            self.store.save_occurrence(original)

            target_bug = self.store.get_bug(target_bug.id)
            if target_bug.reopen():
                self.store.save_bug(target_bug)
                logger.info("Reopened bug %s after recategorization", target_bug.id)

        logger.info(
            "Occurrence %s (bug %s) recategorized as occurrence %s (bug %s)",
            occurrence_id, original.bug_id, moved.id, moved.bug_id,
        )
        return self.store.get_occurrence(moved.id)
