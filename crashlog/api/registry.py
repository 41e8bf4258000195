"""
Registry API
============
Endpoints for the records occurrences hang off: projects, environments,
bugs, notification thresholds and the three lookup-table kinds.

Lookup tables are validated on upload; a malformed table (overlapping ranges,
conflicting mappings, unparseable signatures) is rejected with 422.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from crashlog.api.deps import Container, get_container
from crashlog.models.bug import Bug, Environment, Project
from crashlog.models.notification_threshold import NotificationThreshold
from crashlog.models.obfuscation_map import ClassAlias, MethodAlias, ObfuscationMap, PackageAlias
from crashlog.models.occurrence import Occurrence
from crashlog.models.source_map import SourceMap, SourceMapping
from crashlog.models.symbolication import SymbolRange, Symbolication

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Registry"])


class SourceMapUpload(BaseModel):
    environment_id: Optional[int] = None
    revision: str
    mappings: List[SourceMapping]


class ObfuscationMapUpload(BaseModel):
    deploy_id: Optional[str] = None
    packages: List[PackageAlias] = []
    classes: List[ClassAlias] = []
    methods: List[MethodAlias] = []


class TableCreated(BaseModel):
    id: int
    entries: int


# ---------------------------------------------------------------------------
# Projects / environments / bugs
# ---------------------------------------------------------------------------
@router.post("/projects", response_model=Project, status_code=201)
def create_project(project: Project, container: Container = Depends(get_container)):
    return container.store.add_project(project)


@router.post("/environments", response_model=Environment, status_code=201)
def create_environment(environment: Environment, container: Container = Depends(get_container)):
    return container.store.add_environment(environment)


@router.post("/bugs", response_model=Bug, status_code=201)
def create_bug(bug: Bug, container: Container = Depends(get_container)):
    created = container.store.add_bug(bug)
    logger.info("Registered bug %s (%s)", created.id, created.title)
    return created


@router.get("/bugs/{bug_id}", response_model=Bug)
def get_bug(bug_id: int, container: Container = Depends(get_container)):
    return container.store.get_bug(bug_id)


@router.get("/bugs/{bug_id}/occurrences", response_model=List[Occurrence])
def list_occurrences(bug_id: int, container: Container = Depends(get_container)):
    container.store.get_bug(bug_id)
    return container.store.occurrences_for_bug(bug_id)


@router.post("/bugs/{bug_id}/thresholds", response_model=NotificationThreshold, status_code=201)
def create_threshold(bug_id: int, threshold: NotificationThreshold, container: Container = Depends(get_container)):
    container.store.get_bug(bug_id)
    return container.store.add_notification_threshold(threshold.model_copy(update={"bug_id": bug_id}))


# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------
def _build_table(factory, **fields):
    try:
        return factory(**fields)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Malformed lookup table: {e}")


@router.post("/symbolications", response_model=TableCreated, status_code=201)
def upload_symbolication(ranges: List[SymbolRange], container: Container = Depends(get_container)):
    table = container.store.add_symbolication(_build_table(Symbolication, ranges=ranges))
    return TableCreated(id=table.id, entries=len(table))


@router.post("/source-maps", response_model=TableCreated, status_code=201)
def upload_source_map(upload: SourceMapUpload, container: Container = Depends(get_container)):
    table = _build_table(SourceMap, mappings=upload.mappings)
    container.store.add_source_map(table, upload.environment_id, upload.revision)
    return TableCreated(id=table.id, entries=len(table))


@router.post("/obfuscation-maps", response_model=TableCreated, status_code=201)
def upload_obfuscation_map(upload: ObfuscationMapUpload, container: Container = Depends(get_container)):
    table = container.store.add_obfuscation_map(_build_table(ObfuscationMap, **upload.model_dump()))
    return TableCreated(id=table.id, entries=len(table.packages) + len(table.classes) + len(table.methods))
