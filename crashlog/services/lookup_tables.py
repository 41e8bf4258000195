"""
Default Lookup Tables
=====================
Pure functions choosing which table an occurrence resolves against when the
caller does not supply one.

    symbolication   → the occurrence's own ``symbolication_id``
    source map      → (bug environment, occurrence revision)
    obfuscation map → the bug's deploy

Resolvers never call these; the occurrence service does, so a resolver call
always receives its table explicitly.
"""
from typing import Optional

from crashlog.models.bug import Bug
from crashlog.models.obfuscation_map import ObfuscationMap
from crashlog.models.occurrence import Occurrence
from crashlog.models.source_map import SourceMap
from crashlog.models.symbolication import Symbolication
from crashlog.services.store import InMemoryStore


def default_symbolication(store: InMemoryStore, occurrence: Occurrence) -> Optional[Symbolication]:
    if occurrence.symbolication_id is None:
        return None
    return store.get_symbolication(occurrence.symbolication_id)


def default_source_map(store: InMemoryStore, occurrence: Occurrence, bug: Bug) -> Optional[SourceMap]:
    if not occurrence.revision:
        return None
    return store.find_source_map(bug.environment_id, occurrence.revision)


def default_obfuscation_map(store: InMemoryStore, bug: Bug) -> Optional[ObfuscationMap]:
    return store.find_obfuscation_map(bug.deploy_id)
