"""
Legacy Frame Decoder
====================
Converts array-encoded backtraces sent by older client libraries into the
tagged frame model.

Wire shapes:
    thread                 [name, faulted, [frame, ...]]
    native (unresolved)    ["_RETURN_ADDRESS_", address]
                           ["_RETURN_ADDRESS_", address, symbol]
    javascript             ["_JS_ASSET_", url, line, column, symbol, source_text]
    java                   ["_JAVA_", file, line, signature, qualified_class]
    source                 [file, line] or [file, line, symbol]

A marker only selects its variant when the element count matches that
variant exactly. Anything else with 2 or 3 elements is a readable source
frame, so ["_JAVA_", 87, "timeout"] decodes as SourceFrame(file="_JAVA_").

Contract:
    - DETERMINISTIC: same payload → same threads.
    - Strict: a malformed entry raises ValueError naming its position, so the
      ingestion layer can reject the report instead of storing a mangled trace.
"""
import logging
from typing import Any, List, Sequence

from crashlog.core.constants import LEGACY_JAVA_MARKER, LEGACY_JS_MARKER, LEGACY_NATIVE_MARKER
from crashlog.models.backtrace import Thread
from crashlog.models.frames import (
    SourceFrame,
    UnresolvedJavaFrame,
    UnresolvedJSFrame,
    UnresolvedNativeFrame,
)

logger = logging.getLogger(__name__)


def _as_int(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{what} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{what} must be an integer, got {value!r}") from None


def _optional_str(values: Sequence[Any], index: int):
    if len(values) <= index or values[index] is None:
        return None
    return str(values[index])


def parse_legacy_frame(raw: Sequence[Any]):
    """Decode one array-encoded frame."""
    if not isinstance(raw, (list, tuple)) or not raw:
        raise ValueError(f"Frame must be a non-empty array, got {raw!r}")

    marker = raw[0]
    if marker == LEGACY_NATIVE_MARKER and len(raw) in (2, 3):
        return UnresolvedNativeFrame(
            address=_as_int(raw[1], "address"),
            raw_symbol=_optional_str(raw, 2),
        )

    if marker == LEGACY_JS_MARKER and 4 <= len(raw) <= 6:
        return UnresolvedJSFrame(
            asset_url=str(raw[1]),
            line=_as_int(raw[2], "line"),
            column=_as_int(raw[3], "column"),
            raw_symbol=_optional_str(raw, 4),
            source_text=_optional_str(raw, 5),
        )

    if marker == LEGACY_JAVA_MARKER and len(raw) == 5:
        return UnresolvedJavaFrame(
            obfuscated_file=str(raw[1]),
            line=_as_int(raw[2], "line"),
            obfuscated_signature=str(raw[3]),
            obfuscated_class=str(raw[4]),
        )

    if len(raw) not in (2, 3):
        raise ValueError(f"Unrecognized frame shape with {len(raw)} elements: {raw!r}")
    return SourceFrame(file=str(raw[0]), line=_as_int(raw[1], "line"), symbol=_optional_str(raw, 2))


def parse_legacy_backtraces(payload: Sequence[Any]) -> List[Thread]:
    """
    Decode a full array-encoded backtrace list.

    Parameters
    ----------
    payload : sequence
        ``[[thread_name, faulted, [frame, ...]], ...]``

    Returns
    -------
    list[Thread]
    """
    threads: List[Thread] = []
    for t_index, raw_thread in enumerate(payload or []):
        if not isinstance(raw_thread, (list, tuple)) or len(raw_thread) != 3:
            raise ValueError(f"Thread #{t_index} must be [name, faulted, frames]")
        name, faulted, raw_frames = raw_thread
        frames = []
        for f_index, raw_frame in enumerate(raw_frames or []):
            try:
                frames.append(parse_legacy_frame(raw_frame))
            except ValueError as e:
                raise ValueError(f"Thread #{t_index}, frame #{f_index}: {e}") from e
        threads.append(Thread(name=str(name), faulted=bool(faulted), frames=frames))

    logger.debug("Decoded %d legacy thread(s)", len(threads))
    return threads
