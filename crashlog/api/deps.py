"""
API Dependencies
================
Process-wide wiring of the store, services and post-commit subscribers.

The HTTP layer reaches everything through ``get_container``; tests swap in a
fresh container with ``app.dependency_overrides[get_container]``.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from crashlog.core.config import RESOLVE_ON_CREATE
from crashlog.notifications.mailer import LoggingMailer, Mailer
from crashlog.notifications.pagerduty import PagerDutyNotifier
from crashlog.notifications.thresholds import ThresholdNotifier
from crashlog.services.hooks import HookBus
from crashlog.services.occurrence_service import OccurrenceService
from crashlog.services.store import InMemoryStore

logger = logging.getLogger(__name__)


@dataclass
class Container:
    store: InMemoryStore
    hooks: HookBus
    occurrences: OccurrenceService


def build_container(
    store: Optional[InMemoryStore] = None,
    mailer: Optional[Mailer] = None,
    resolve_on_create: bool = RESOLVE_ON_CREATE,
    pagerduty_notifier: Optional[PagerDutyNotifier] = None,
) -> Container:
    """Wire a store, the occurrence service and the standard hooks."""
    store = store or InMemoryStore()
    hooks = HookBus()
    occurrences = OccurrenceService(store, hooks=hooks, resolve_on_create=resolve_on_create)
    hooks.subscribe(ThresholdNotifier(store, mailer or LoggingMailer()))
    hooks.subscribe(pagerduty_notifier or PagerDutyNotifier(store))
    logger.debug("Container built with %d post-commit hook(s)", len(hooks))
    return Container(store=store, hooks=hooks, occurrences=occurrences)


_container: Optional[Container] = None


def get_container() -> Container:
    global _container
    if _container is None:
        _container = build_container()
    return _container
