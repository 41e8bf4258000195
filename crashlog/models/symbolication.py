"""
Symbolication Model
===================
Native address table: half-open ranges ``[start, end)`` mapped to a source
location.

Ranges in one table never overlap. Overlaps are a configuration error and are
rejected while the table is built (constructor or ``add``), never during
resolution. Lookup is a binary search over range starts.
"""
import bisect
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, PrivateAttr, model_validator

from crashlog.core.errors import MalformedTableError


class SymbolRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: int
    end: int
    file: str
    line: int
    symbol: str

    @model_validator(mode="after")
    def _check_bounds(self) -> "SymbolRange":
        if self.start < 0 or self.end <= self.start:
            raise MalformedTableError(
                f"Empty or negative symbol range [{self.start}, {self.end})"
            )
        return self

    def contains(self, address: int) -> bool:
        return self.start <= address < self.end


class Symbolication(BaseModel):
    id: Optional[int] = None
    ranges: List[SymbolRange] = []

    _starts: List[int] = PrivateAttr(default_factory=list)

    def model_post_init(self, __context) -> None:
        ordered = sorted(self.ranges, key=lambda r: r.start)
        for previous, current in zip(ordered, ordered[1:]):
            if current.start < previous.end:
                raise MalformedTableError(
                    f"Symbol range [{current.start}, {current.end}) overlaps "
                    f"[{previous.start}, {previous.end})"
                )
        self.ranges = ordered
        self._starts = [r.start for r in ordered]

    def add(self, start: int, end: int, file: str, line: int, symbol: str) -> SymbolRange:
        """Insert a range, rejecting it if it overlaps an existing one."""
        new = SymbolRange(start=start, end=end, file=file, line=line, symbol=symbol)
        index = bisect.bisect_left(self._starts, start)
        neighbours = self.ranges[max(index - 1, 0):index + 1]
        for existing in neighbours:
            if new.start < existing.end and existing.start < new.end:
                raise MalformedTableError(
                    f"Symbol range [{start}, {end}) overlaps "
                    f"[{existing.start}, {existing.end})"
                )
        self.ranges.insert(index, new)
        self._starts.insert(index, start)
        return new

    def lookup(self, address: int) -> Optional[SymbolRange]:
        """Range containing ``address``, or None."""
        index = bisect.bisect_right(self._starts, address) - 1
        if index < 0:
            return None
        candidate = self.ranges[index]
        return candidate if candidate.contains(address) else None

    def __len__(self) -> int:
        return len(self.ranges)
