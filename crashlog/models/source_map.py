"""
Source Map Model
================
Minified-JavaScript table keyed by the exact ``(asset_url, line, column)``
triple a browser reports.

No interpolation: a position that is not in the table does not resolve.
Two mappings for the same triple that disagree are rejected at build time.
"""
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, PrivateAttr

from crashlog.core.errors import MalformedTableError

_Key = Tuple[str, int, int]


class SourceMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    asset_url: str
    line: int
    column: int
    source_file: str
    source_line: int
    source_column: int = 0
    symbol: Optional[str] = None

    @property
    def key(self) -> _Key:
        return (self.asset_url, self.line, self.column)


class SourceMap(BaseModel):
    id: Optional[int] = None
    mappings: List[SourceMapping] = []

    _index: Dict[_Key, SourceMapping] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        self._index = {}
        for mapping in self.mappings:
            self._insert(mapping)

    def _insert(self, mapping: SourceMapping) -> None:
        existing = self._index.get(mapping.key)
        if existing is not None and existing != mapping:
            raise MalformedTableError(
                f"Conflicting source mappings for {mapping.asset_url}:"
                f"{mapping.line}:{mapping.column}"
            )
        self._index[mapping.key] = mapping

    def add(self, mapping: SourceMapping) -> None:
        is_new = mapping.key not in self._index
        self._insert(mapping)
        if is_new:
            self.mappings.append(mapping)

    def lookup(self, asset_url: str, line: int, column: int) -> Optional[SourceMapping]:
        return self._index.get((asset_url, line, column))

    def __len__(self) -> int:
        return len(self._index)
