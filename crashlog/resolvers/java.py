"""
Java Deobfuscator
=================
Restores original class, file and method names in obfuscated Java/Android
frames using an ObfuscationMap.

Resolution rules:
    1. Obfuscated class → real package (package aliases) → class alias.
       No class alias means the frame is left exactly as reported.
    2. With the class known, the method alias is looked up by name and
       deobfuscated argument/return types. When no method alias matches,
       the reported signature is kept (the method was not renamed).
    3. The resolved frame is (class source path, line, signature).
"""
import logging
from typing import Dict, List, Optional, Tuple

from crashlog.models.backtrace import Thread, replace_frames
from crashlog.models.frames import ResolvedJavaFrame, UnresolvedJavaFrame, needs_deobfuscation
from crashlog.models.obfuscation_map import ObfuscationMap, parse_signature

logger = logging.getLogger(__name__)


def deobfuscate_frame(frame: UnresolvedJavaFrame, namespace: ObfuscationMap) -> Optional[ResolvedJavaFrame]:
    """Resolved counterpart of ``frame``, or None when its class is unknown."""
    klass = namespace.find_class(frame.obfuscated_class)
    if klass is None:
        return None

    try:
        obfuscated = parse_signature(frame.obfuscated_signature)
    except ValueError:
        logger.debug("Unparseable signature %r in %s", frame.obfuscated_signature, frame.obfuscated_class)
        return None

    signature = namespace.find_method(klass.real_name, obfuscated) or frame.obfuscated_signature
    path = klass.path or klass.real_name.split("$")[0].replace(".", "/") + ".java"
    return ResolvedJavaFrame(file=path, line=frame.line, signature=signature)


def deobfuscate_backtraces(threads: List[Thread], namespace: ObfuscationMap) -> List[Thread]:
    """Resolve obfuscated Java frames in ``threads`` against ``namespace``."""
    cache: Dict[Tuple[str, str, str, int], Optional[ResolvedJavaFrame]] = {}
    hits = 0

    def resolve(frame):
        nonlocal hits
        if not needs_deobfuscation(frame):
            return frame
        key = (frame.obfuscated_class, frame.obfuscated_signature, frame.obfuscated_file, frame.line)
        if key not in cache:
            cache[key] = deobfuscate_frame(frame, namespace)
        resolved = cache[key]
        if resolved is None:
            return frame
        hits += 1
        return resolved

    result = replace_frames(threads, resolve)
    logger.debug("Deobfuscated %d Java frame(s)", hits)
    return result
