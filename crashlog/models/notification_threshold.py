"""
Notification Threshold Model
Pydantic model for "mail me when this bug occurs N times within a period".
"""
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field


class NotificationThreshold(BaseModel):
    id: Optional[int] = None
    bug_id: int
    recipient: str
    threshold: int = Field(ge=1)
    period_seconds: int = Field(ge=1)
    last_tripped_at: Optional[datetime] = None

    @property
    def period(self) -> timedelta:
        return timedelta(seconds=self.period_seconds)

    def tripped_within_period(self, now: datetime) -> bool:
        return self.last_tripped_at is not None and self.last_tripped_at > now - self.period
