"""
Errors
======
Exception hierarchy for the occurrence core.

Resolution misses are never errors and do not appear here. Everything below
is either a caller mistake (unknown id, operating on a truncated report), a
configuration mistake (a malformed lookup table) or sequencer exhaustion.
"""


class CrashlogError(Exception):
    """Base class for all domain errors."""


class OccurrenceNotFound(CrashlogError, LookupError):
    def __init__(self, occurrence_id: int) -> None:
        super().__init__(f"Occurrence {occurrence_id} not found")
        self.occurrence_id = occurrence_id


class BugNotFound(CrashlogError, LookupError):
    def __init__(self, bug_id: int) -> None:
        super().__init__(f"Bug {bug_id} not found")
        self.bug_id = bug_id


class LookupTableNotFound(CrashlogError, LookupError):
    pass


class OccurrenceTruncatedError(CrashlogError):
    def __init__(self, occurrence_id: int) -> None:
        super().__init__(f"Occurrence {occurrence_id} is truncated")
        self.occurrence_id = occurrence_id


class SequenceContentionError(CrashlogError):
    """Number allocation for a bug kept losing the compare-and-set race."""

    def __init__(self, bug_id: int, attempts: int) -> None:
        super().__init__(
            f"Could not allocate an occurrence number for bug {bug_id} "
            f"after {attempts} attempts"
        )
        self.bug_id = bug_id
        self.attempts = attempts


class MalformedTableError(CrashlogError, ValueError):
    """A lookup table failed validation while it was being built."""
