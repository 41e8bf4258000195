"""
Occurrence API
==============
HTTP surface over the occurrence lifecycle.

Routes (prefix /api/occurrences):
    POST   /                         create (tagged or legacy array backtraces)
    GET    /{id}                     fetch with resolution flags
    GET    /{id}/faulted-backtrace   frames of the faulted thread
    POST   /{id}/symbolicate         optional override table
    POST   /{id}/sourcemap           optional override table
    POST   /{id}/deobfuscate         optional override table
    POST   /{id}/truncate
    POST   /truncate                 batch
    POST   /{id}/redirect
    POST   /{id}/recategorize        target bug chosen by the caller
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from crashlog.api.deps import Container, get_container
from crashlog.models.backtrace import Thread
from crashlog.models.frames import Frame
from crashlog.models.occurrence import Occurrence, OccurrenceState
from crashlog.parser.legacy_frames import parse_legacy_backtraces
from crashlog.services.recategorizer import FixedBugAssigner, Recategorizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/occurrences", tags=["Occurrences"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------
class CreateOccurrenceRequest(BaseModel):
    bug_id: int
    occurred_at: datetime
    client: str = ""
    message: str = ""
    revision: str = ""
    backtraces: List[Thread] = []
    legacy_backtraces: Optional[List[Any]] = None   # array-encoded, older clients
    metadata: Optional[Dict[str, Any]] = None
    symbolication_id: Optional[int] = None


class ResolveRequest(BaseModel):
    table_id: Optional[int] = None        # override the default lookup table
    include_symbolized: bool = False      # native only


class BatchTruncateRequest(BaseModel):
    occurrence_ids: List[int]


class BatchTruncateResponse(BaseModel):
    truncated: int


class RedirectRequest(BaseModel):
    target_id: int


class RecategorizeRequest(BaseModel):
    bug_id: int


class OccurrenceView(BaseModel):
    id: int
    bug_id: int
    number: int
    occurred_at: datetime
    client: str
    message: str
    revision: str
    backtraces: Optional[List[Thread]]
    metadata: Optional[Dict[str, Any]]
    symbolication_id: Optional[int]
    state: OccurrenceState
    redirect_target_id: Optional[int]
    symbolicated: bool
    sourcemapped: bool
    deobfuscated: bool


def _view(occurrence: Occurrence) -> OccurrenceView:
    return OccurrenceView(
        **occurrence.model_dump(exclude={"backtraces"}),
        backtraces=occurrence.backtraces,
        symbolicated=occurrence.is_symbolicated(),
        sourcemapped=occurrence.is_sourcemapped(),
        deobfuscated=occurrence.is_deobfuscated(),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@router.post("", response_model=OccurrenceView, status_code=201)
def create_occurrence(request: CreateOccurrenceRequest, container: Container = Depends(get_container)):
    backtraces = request.backtraces
    if request.legacy_backtraces is not None:
        try:
            backtraces = parse_legacy_backtraces(request.legacy_backtraces)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=f"Malformed backtrace: {e}")

    try:
        occurrence = container.occurrences.create(
            request.bug_id,
            occurred_at=request.occurred_at,
            client=request.client,
            message=request.message,
            revision=request.revision,
            backtraces=backtraces,
            metadata=request.metadata,
            symbolication_id=request.symbolication_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _view(occurrence)


@router.get("/{occurrence_id}", response_model=OccurrenceView)
def get_occurrence(occurrence_id: int, container: Container = Depends(get_container)):
    return _view(container.occurrences.get(occurrence_id))


@router.get("/{occurrence_id}/faulted-backtrace", response_model=List[Frame])
def get_faulted_backtrace(occurrence_id: int, container: Container = Depends(get_container)):
    return container.occurrences.get(occurrence_id).faulted_backtrace()


@router.post("/{occurrence_id}/symbolicate", response_model=OccurrenceView)
def symbolicate(
    occurrence_id: int,
    request: Optional[ResolveRequest] = None,
    container: Container = Depends(get_container),
):
    request = request or ResolveRequest()
    table = None
    if request.table_id is not None:
        table = container.store.get_symbolication(request.table_id)
        if table is None:
            raise HTTPException(status_code=404, detail=f"Symbolication {request.table_id} not found")
    return _view(container.occurrences.symbolicate(occurrence_id, table, request.include_symbolized))


@router.post("/{occurrence_id}/sourcemap", response_model=OccurrenceView)
def sourcemap(
    occurrence_id: int,
    request: Optional[ResolveRequest] = None,
    container: Container = Depends(get_container),
):
    request = request or ResolveRequest()
    table = container.store.get_source_map(request.table_id) if request.table_id is not None else None
    return _view(container.occurrences.sourcemap(occurrence_id, table))


@router.post("/{occurrence_id}/deobfuscate", response_model=OccurrenceView)
def deobfuscate(
    occurrence_id: int,
    request: Optional[ResolveRequest] = None,
    container: Container = Depends(get_container),
):
    request = request or ResolveRequest()
    table = container.store.get_obfuscation_map(request.table_id) if request.table_id is not None else None
    return _view(container.occurrences.deobfuscate(occurrence_id, table))


@router.post("/truncate", response_model=BatchTruncateResponse)
def truncate_many(request: BatchTruncateRequest, container: Container = Depends(get_container)):
    return BatchTruncateResponse(truncated=container.occurrences.truncate_many(request.occurrence_ids))


@router.post("/{occurrence_id}/truncate", response_model=OccurrenceView)
def truncate(occurrence_id: int, container: Container = Depends(get_container)):
    return _view(container.occurrences.truncate(occurrence_id))


@router.post("/{occurrence_id}/redirect", response_model=OccurrenceView)
def redirect(occurrence_id: int, request: RedirectRequest, container: Container = Depends(get_container)):
    try:
        return _view(container.occurrences.redirect(occurrence_id, request.target_id))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/{occurrence_id}/recategorize", response_model=OccurrenceView)
def recategorize(occurrence_id: int, request: RecategorizeRequest, container: Container = Depends(get_container)):
    """Re-file the occurrence under ``bug_id``; returns the new occurrence."""
    target = container.store.get_bug(request.bug_id)
    recategorizer = Recategorizer(container.occurrences, FixedBugAssigner(target))
    return _view(recategorizer.recategorize(occurrence_id))
