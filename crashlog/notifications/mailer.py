"""
Mailer
Delivery collaborator for notification mail. Transport is out of scope; the
default implementation only logs what would be sent.
"""
import logging
from typing import Protocol

from crashlog.core.config import MAIL_SENDER

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    def deliver(self, recipient: str, subject: str, body: str) -> None:
        ...


class LoggingMailer:
    def __init__(self, sender: str = MAIL_SENDER) -> None:
        self.sender = sender

    def deliver(self, recipient: str, subject: str, body: str) -> None:
        logger.info("Mail from %s to %s: %s", self.sender, recipient, subject)
