"""
Bug Model
=========
Pydantic models for a deduplicated defect and its owning project/environment.

Fields:
    class_name / file / line   identity of the bug (where it was blamed)
    environment_id             environment the bug was reported in
    deploy_id                  deploy whose obfuscation map applies
    first_occurrence           occurred_at of the first occurrence; write-once
    assigned_user              owner, if any (assigned bugs never page)
    irrelevant                 marked as noise
    fixed / fix_deployed       resolution state; reopened by recategorization
"""
import os
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from crashlog.core.constants import INCIDENT_KEY_PREFIX


class Project(BaseModel):
    id: Optional[int] = None
    name: str
    pagerduty_enabled: bool = False
    pagerduty_service_key: Optional[str] = None
    critical_threshold: int = 2


class Environment(BaseModel):
    id: Optional[int] = None
    project_id: int
    name: str = "production"
    notifies_pagerduty: bool = False


class Bug(BaseModel):
    id: Optional[int] = None
    class_name: str
    file: str
    line: int
    environment_id: Optional[int] = None
    deploy_id: Optional[str] = None
    first_occurrence: Optional[datetime] = None
    assigned_user: Optional[str] = None
    irrelevant: bool = False
    fixed: bool = False
    fix_deployed: bool = False

    @property
    def pagerduty_incident_key(self) -> str:
        return f"{INCIDENT_KEY_PREFIX}:{self.id}"

    @property
    def title(self) -> str:
        return f"{self.class_name} in {os.path.basename(self.file)}:{self.line}"

    def reopen(self) -> bool:
        """Clear fixed/fix_deployed; returns True if anything changed."""
        if not (self.fixed or self.fix_deployed):
            return False
        self.fixed = False
        self.fix_deployed = False
        return True
