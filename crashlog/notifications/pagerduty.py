"""
PagerDuty Integration
=====================
Incident paging for bugs that cross their project's critical threshold.

Policy (all must hold):
    - paging not globally disabled (PAGERDUTY_DISABLED)
    - project has paging enabled and a service key
    - environment notifies PagerDuty
    - bug is unassigned, relevant and not fixed
    - this occurrence is the one that took the bug's count past
      ``project.critical_threshold`` (so each bug pages once)
"""
import logging
from typing import Any, Dict, Optional

import httpx

from crashlog.core.config import PAGERDUTY_API_URL, PAGERDUTY_DISABLED, PAGERDUTY_TIMEOUT
from crashlog.models.bug import Bug, Environment, Project
from crashlog.models.occurrence import Occurrence
from crashlog.services.store import InMemoryStore

logger = logging.getLogger(__name__)


class PagerDutyClient:
    """Minimal client for the generic events endpoint."""

    def __init__(self, service_key: str, api_url: str = PAGERDUTY_API_URL, timeout: float = PAGERDUTY_TIMEOUT) -> None:
        self.service_key = service_key
        self.api_url = api_url
        self.timeout = timeout

    def trigger(self, description: str, incident_key: str, details: Dict[str, Any]) -> Dict[str, Any]:
        payload = {
            "service_key": self.service_key,
            "event_type": "trigger",
            "description": description,
            "incident_key": incident_key,
            "details": details,
        }
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.post(self.api_url, json=payload)
            resp.raise_for_status()
            return resp.json()


def should_page(
    bug: Bug,
    project: Optional[Project],
    environment: Optional[Environment],
    occurrence_count: int,
    disabled: bool = PAGERDUTY_DISABLED,
) -> bool:
    if disabled or project is None or environment is None:
        return False
    if not (project.pagerduty_enabled and project.pagerduty_service_key):
        return False
    if not environment.notifies_pagerduty:
        return False
    if bug.assigned_user or bug.irrelevant or bug.fixed:
        return False
    return occurrence_count == project.critical_threshold + 1


def incident_details(bug: Bug, occurrence: Occurrence, occurrence_count: int) -> Dict[str, Any]:
    return {
        "bug_id": bug.id,
        "class_name": bug.class_name,
        "file": bug.file,
        "line": bug.line,
        "message": occurrence.message,
        "revision": occurrence.revision,
        "occurrence_number": occurrence.number,
        "occurrence_count": occurrence_count,
    }


class PagerDutyNotifier:
    def __init__(self, store: InMemoryStore, client_factory=PagerDutyClient, disabled: bool = PAGERDUTY_DISABLED) -> None:
        self.store = store
        self.client_factory = client_factory
        self.disabled = disabled

    def __call__(self, occurrence: Occurrence, bug: Bug) -> None:
        if self.disabled:
            return
        environment = self.store.get_environment(bug.environment_id)
        project = self.store.get_project(environment.project_id) if environment else None
        count = self.store.count_occurrences(bug.id)

        if not should_page(bug, project, environment, count, disabled=False):
            return

        client = self.client_factory(project.pagerduty_service_key)
        client.trigger(bug.title, bug.pagerduty_incident_key, incident_details(bug, occurrence, count))
        logger.info("Paged incident %s for bug %s (%d occurrences)", bug.pagerduty_incident_key, bug.id, count)
