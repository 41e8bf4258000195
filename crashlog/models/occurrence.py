"""
Occurrence Model
================
One reported instance of a bug, plus its one-way lifecycle.

Lifecycle:
    active ──truncate()──▶ truncated          (terminal)
    active ──redirect_to(o)──▶ truncated + redirect_target_id = o.id

Frames move Unresolved → Resolved per domain through symbolicate(),
sourcemap() and deobfuscate(). Each of those takes the lookup table
explicitly; choosing a default table is the caller's job (see
crashlog.services.lookup_tables). All three are no-ops when the occurrence is
truncated, when no table is given, or when nothing is left to resolve, and
none of them touch any field other than ``backtraces``.

Provenance fields (client, occurred_at, message, revision, bug_id, number)
survive truncation.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator

from crashlog.models.backtrace import (
    Thread,
    faulted_frames,
    is_deobfuscated,
    is_sourcemapped,
    is_symbolicated,
)
from crashlog.models.frames import Frame
from crashlog.models.obfuscation_map import ObfuscationMap
from crashlog.models.source_map import SourceMap
from crashlog.models.symbolication import Symbolication
from crashlog.resolvers.java import deobfuscate_backtraces
from crashlog.resolvers.javascript import sourcemap_backtraces
from crashlog.resolvers.native import symbolicate_backtraces


class OccurrenceState(str, Enum):
    ACTIVE = "active"
    TRUNCATED = "truncated"


class Occurrence(BaseModel):
    id: Optional[int] = None
    bug_id: int
    number: Optional[int] = None

    occurred_at: datetime
    client: str = ""
    message: str = ""
    revision: str = ""

    backtraces: Optional[List[Thread]] = []
    metadata: Optional[Dict[str, Any]] = None
    symbolication_id: Optional[int] = None

    state: OccurrenceState = OccurrenceState.ACTIVE
    redirect_target_id: Optional[int] = None

    @field_validator("occurred_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        return v if v.tzinfo is not None else v.replace(tzinfo=timezone.utc)

    @field_validator("backtraces")
    @classmethod
    def single_faulted_thread(cls, v: Optional[List[Thread]]) -> Optional[List[Thread]]:
        if v and sum(1 for t in v if t.faulted) > 1:
            raise ValueError("At most one thread may be marked as faulted")
        return v

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def truncated(self) -> bool:
        return self.state is OccurrenceState.TRUNCATED

    def faulted_backtrace(self) -> List[Frame]:
        return faulted_frames(self.backtraces)

    def is_symbolicated(self, include_symbolized: bool = False) -> bool:
        return is_symbolicated(self.backtraces, include_symbolized)

    def is_sourcemapped(self) -> bool:
        return is_sourcemapped(self.backtraces)

    def is_deobfuscated(self) -> bool:
        return is_deobfuscated(self.backtraces)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def _replace_backtraces(self, resolved: List[Thread]) -> bool:
        if resolved == self.backtraces:
            return False
        self.backtraces = resolved
        return True

    def symbolicate(self, symbolication: Optional[Symbolication], include_symbolized: bool = False) -> bool:
        """Resolve native frames; returns True if the backtraces changed."""
        if self.truncated or symbolication is None or self.is_symbolicated(include_symbolized):
            return False
        return self._replace_backtraces(
            symbolicate_backtraces(self.backtraces, symbolication, include_symbolized)
        )

    def sourcemap(self, source_map: Optional[SourceMap]) -> bool:
        """Resolve JS asset frames; returns True if the backtraces changed."""
        if self.truncated or source_map is None or self.is_sourcemapped():
            return False
        return self._replace_backtraces(sourcemap_backtraces(self.backtraces, source_map))

    def deobfuscate(self, namespace: Optional[ObfuscationMap]) -> bool:
        """Resolve obfuscated Java frames; returns True if the backtraces changed."""
        if self.truncated or namespace is None or self.is_deobfuscated():
            return False
        return self._replace_backtraces(deobfuscate_backtraces(self.backtraces, namespace))

    # ------------------------------------------------------------------
    # Truncation / redirection
    # ------------------------------------------------------------------
    def truncate(self) -> bool:
        """Drop backtraces and metadata for good. Returns False if already truncated."""
        if self.truncated:
            return False
        self.backtraces = None
        self.metadata = None
        self.state = OccurrenceState.TRUNCATED
        return True

    def redirect_to(self, target: "Occurrence") -> None:
        if target.id is None:
            raise ValueError("Redirect target must be persisted first")
        if target.id == self.id:
            raise ValueError("An occurrence cannot redirect to itself")
        self.truncate()
        self.redirect_target_id = target.id

    def copy_payload(self) -> Dict[str, Any]:
        """Fields carried over when this report is re-filed under another bug."""
        return {
            "occurred_at": self.occurred_at,
            "client": self.client,
            "message": self.message,
            "revision": self.revision,
            "backtraces": list(self.backtraces or []),
            "metadata": dict(self.metadata) if self.metadata is not None else None,
            "symbolication_id": self.symbolication_id,
        }
