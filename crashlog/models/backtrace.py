"""
Backtrace Model
===============
Threads and the read-only queries over a list of threads.

A backtrace is simply ``List[Thread]``; resolvers never mutate a Thread in
place, they build replacements with ``model_copy``.
"""
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict

from crashlog.models.frames import (
    Frame,
    needs_deobfuscation,
    needs_sourcemapping,
    needs_symbolication,
)


class Thread(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    faulted: bool = False
    frames: List[Frame] = []


def faulted_frames(threads: Optional[List[Thread]]) -> List[Frame]:
    """Frames of the faulted thread, or an empty list if no thread faulted."""
    for thread in threads or []:
        if thread.faulted:
            return list(thread.frames)
    return []


def _fully_resolved(threads: Optional[List[Thread]], pending: Callable) -> bool:
    return not any(pending(frame) for thread in threads or [] for frame in thread.frames)


def is_symbolicated(threads: Optional[List[Thread]], include_symbolized: bool = False) -> bool:
    return _fully_resolved(threads, lambda f: needs_symbolication(f, include_symbolized))


def is_sourcemapped(threads: Optional[List[Thread]]) -> bool:
    return _fully_resolved(threads, needs_sourcemapping)


def is_deobfuscated(threads: Optional[List[Thread]]) -> bool:
    return _fully_resolved(threads, needs_deobfuscation)


def replace_frames(threads: List[Thread], resolve: Callable) -> List[Thread]:
    """
    Apply ``resolve`` to every frame and return new threads.

    ``resolve`` returns the replacement frame or the frame itself. Threads
    whose frames are all unchanged are reused as-is.
    """
    result: List[Thread] = []
    for thread in threads:
        frames = [resolve(frame) for frame in thread.frames]
        if all(new is old for new, old in zip(frames, thread.frames)):
            result.append(thread)
        else:
            result.append(thread.model_copy(update={"frames": frames}))
    return result
