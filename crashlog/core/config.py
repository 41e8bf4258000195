"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    LOG_LEVEL                Root log level name (default: INFO)
    LOG_DIR                  Directory for the daily log file (default: logs)
    LOG_TO_FILE              Also write logs to LOG_DIR (default: true)
    RESOLVE_ON_CREATE        Run the three resolvers as a post-commit hook (default: true)
    SEQUENCER_MAX_RETRIES    Cap on compare-and-set attempts per number (default: 0, no cap)
    PAGERDUTY_DISABLED       Globally disable incident paging (default: false)
    PAGERDUTY_API_URL        Events endpoint incidents are posted to
    PAGERDUTY_TIMEOUT        HTTP timeout in seconds for the events endpoint (default: 10)
    MAIL_SENDER              From-address used for threshold notifications

Resolution:
    Resolvers normally run from a job queue after an occurrence is durably
    stored. RESOLVE_ON_CREATE wires them as a post-commit hook instead, which
    is what a single-process deployment (and the test-suite) wants.

Sequencer:
    Number allocation is optimistic and retries until it wins. Setting a
    positive ceiling trades that for SequenceContentionError during event
    storms; a duplicate number is never an option.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_TO_FILE = _flag("LOG_TO_FILE", "true")

RESOLVE_ON_CREATE = _flag("RESOLVE_ON_CREATE", "true")

SEQUENCER_MAX_RETRIES = int(os.getenv("SEQUENCER_MAX_RETRIES", 0))

# Incident paging
PAGERDUTY_DISABLED = _flag("PAGERDUTY_DISABLED", "false")
PAGERDUTY_API_URL = os.getenv(
    "PAGERDUTY_API_URL",
    "https://events.pagerduty.com/generic/2010-04-15/create_event.json",
)
PAGERDUTY_TIMEOUT = float(os.getenv("PAGERDUTY_TIMEOUT", 10))

# Mail
MAIL_SENDER = os.getenv("MAIL_SENDER", "crashlog@localhost")
