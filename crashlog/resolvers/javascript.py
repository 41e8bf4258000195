"""
JavaScript Source Mapper
========================
Maps minified asset positions back to original source using a SourceMap.
Exact ``(asset_url, line, column)`` matches only.
"""
import logging
from typing import Dict, List, Optional, Tuple

from crashlog.models.backtrace import Thread, replace_frames
from crashlog.models.frames import ResolvedJSFrame, needs_sourcemapping
from crashlog.models.source_map import SourceMap

logger = logging.getLogger(__name__)


def sourcemap_backtraces(threads: List[Thread], source_map: SourceMap) -> List[Thread]:
    """Resolve JS asset frames in ``threads`` against ``source_map``."""
    cache: Dict[Tuple[str, int, int], Optional[ResolvedJSFrame]] = {}
    hits = 0

    def resolve(frame):
        nonlocal hits
        if not needs_sourcemapping(frame):
            return frame
        key = (frame.asset_url, frame.line, frame.column)
        if key not in cache:
            mapping = source_map.lookup(*key)
            cache[key] = (
                ResolvedJSFrame(file=mapping.source_file, line=mapping.source_line, symbol=mapping.symbol)
                if mapping else None
            )
        resolved = cache[key]
        if resolved is None:
            return frame
        hits += 1
        return resolved

    result = replace_frames(threads, resolve)
    logger.debug("Source-mapped %d JS frame(s)", hits)
    return result
