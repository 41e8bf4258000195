"""
Threshold Notifier
==================
Post-commit hook that mails a subscriber when a bug occurs ``threshold``
times within a trailing ``period``.

A threshold trips at most once per period: ``last_tripped_at`` is recorded
when the mail goes out and suppresses further mail until it ages out.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from crashlog.models.bug import Bug
from crashlog.models.notification_threshold import NotificationThreshold
from crashlog.models.occurrence import Occurrence
from crashlog.notifications.mailer import Mailer
from crashlog.services.store import InMemoryStore

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def render_threshold_mail(bug: Bug, threshold: NotificationThreshold, count: int) -> tuple[str, str]:
    """Subject and body of the notification mail."""
    subject = f"[crashlog] {bug.title} occurred {count} times"
    body = (
        f"Bug #{bug.id} ({bug.class_name} in {bug.file}:{bug.line}) has occurred "
        f"{count} times in the last {threshold.period_seconds} seconds, reaching "
        f"your notification threshold of {threshold.threshold}.\n"
    )
    return subject, body


class ThresholdNotifier:
    def __init__(
        self,
        store: InMemoryStore,
        mailer: Mailer,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.mailer = mailer
        self.clock = clock or _utc_now

    def __call__(self, occurrence: Occurrence, bug: Bug) -> None:
        now = self.clock()
        for threshold in self.store.thresholds_for_bug(bug.id):
            if threshold.tripped_within_period(now):
                continue
            count = self.store.count_occurrences(bug.id, since=now - threshold.period)
            if count < threshold.threshold:
                continue

            subject, body = render_threshold_mail(bug, threshold, count)
            self.mailer.deliver(threshold.recipient, subject, body)

            threshold.last_tripped_at = now
            self.store.save_notification_threshold(threshold)
            logger.info(
                "Threshold %s tripped for bug %s (%d >= %d), notified %s",
                threshold.id, bug.id, count, threshold.threshold, threshold.recipient,
            )
