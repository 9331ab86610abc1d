"""Daily cycle Pydantic schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel


class SchedulerStepResult(BaseModel):
    """Outcome of one daily cycle step."""

    name: str
    success: bool
    started_at: datetime
    finished_at: datetime
    error: str | None = None


class SchedulerRunSummary(BaseModel):
    """Outcome of a daily cycle for one organization."""

    organization_id: uuid.UUID
    started_at: datetime
    finished_at: datetime
    steps: list[SchedulerStepResult]

    @property
    def failed_steps(self) -> list[str]:
        return [step.name for step in self.steps if not step.success]
