"""
Native Symbolicator
===================
Maps compiled-code return addresses to source locations using a
Symbolication table.

Contract:
    - Pure: returns new threads, never mutates the input.
    - Only eligible UnresolvedNativeFrames are looked up; every other frame
      (other domains, already resolved) is returned as the same object.
    - An address outside every range is a miss, not an error.
"""
import logging
from typing import Dict, List, Optional

from crashlog.models.backtrace import Thread, replace_frames
from crashlog.models.frames import ResolvedNativeFrame, needs_symbolication
from crashlog.models.symbolication import Symbolication

logger = logging.getLogger(__name__)


def symbolicate_backtraces(
    threads: List[Thread],
    symbolication: Symbolication,
    include_symbolized: bool = False,
) -> List[Thread]:
    """
    Resolve native frames in ``threads`` against ``symbolication``.

    Parameters
    ----------
    threads : list[Thread]
        Backtrace to resolve.
    symbolication : Symbolication
        Address table to resolve against.
    include_symbolized : bool
        Also re-resolve native frames that already carry a raw symbol.

    Returns
    -------
    list[Thread]
        Threads with every resolvable frame replaced.
    """
    cache: Dict[int, Optional[ResolvedNativeFrame]] = {}
    hits = misses = 0

    def resolve(frame):
        nonlocal hits, misses
        if not needs_symbolication(frame, include_symbolized):
            return frame
        if frame.address not in cache:
            found = symbolication.lookup(frame.address)
            cache[frame.address] = (
                ResolvedNativeFrame(file=found.file, line=found.line, symbol=found.symbol)
                if found else None
            )
        resolved = cache[frame.address]
        if resolved is None:
            misses += 1
            return frame
        hits += 1
        return resolved

    result = replace_frames(threads, resolve)
    logger.debug("Symbolicated %d native frame(s), %d miss(es)", hits, misses)
    return result
