"""
Post-Commit Hooks
=================
Fan-out point for work that must only happen once an occurrence is durably
stored: the resolution job, threshold mail, incident paging.

Subscribers are called in registration order with ``(occurrence, bug)``.
A failing subscriber is logged and skipped; it never affects the commit
that already happened or the subscribers after it.
"""
import logging
from typing import Callable, List

from crashlog.models.bug import Bug
from crashlog.models.occurrence import Occurrence

logger = logging.getLogger(__name__)

OccurrenceHook = Callable[[Occurrence, Bug], None]


class HookBus:
    def __init__(self) -> None:
        self._subscribers: List[OccurrenceHook] = []

    def subscribe(self, hook: OccurrenceHook) -> OccurrenceHook:
        self._subscribers.append(hook)
        return hook

    def unsubscribe(self, hook: OccurrenceHook) -> None:
        if hook in self._subscribers:
            self._subscribers.remove(hook)

    def publish(self, occurrence: Occurrence, bug: Bug) -> None:
        for hook in list(self._subscribers):
            name = getattr(hook, "__qualname__", type(hook).__name__)
            try:
                hook(occurrence, bug)
            except Exception as e:
                logger.warning(
                    "Post-commit hook %s failed for occurrence %s: %s",
                    name, occurrence.id, e, exc_info=True,
                )

    def __len__(self) -> int:
        return len(self._subscribers)
