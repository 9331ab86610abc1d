"""Rule configuration Pydantic schemas."""

import uuid

from pydantic import BaseModel, Field


class RuleConfigSchema(BaseModel):
    """Enabled flag plus numeric thresholds."""

    enabled: bool
    thresholds: dict[str, float]

    model_config = {"from_attributes": True}


class RuleDescription(BaseModel):
    """A catalog rule with its default and effective configuration."""

    id: str
    label: str
    default_config: RuleConfigSchema
    effective_config: RuleConfigSchema
    is_customized: bool


class RuleOverrideUpdate(BaseModel):
    """Override of one rule; omitted fields keep inheriting."""

    enabled: bool | None = None
    thresholds: dict[str, float] | None = Field(
        None,
        description="Threshold overrides (e.g., {'cpuPercent': 15})",
    )


class RuleRunRequest(BaseModel):
    organization_id: uuid.UUID


class RuleRunResponse(BaseModel):
    """Counters of one rule engine run."""

    rules_executed: int
    rules_failed: int
    recommendations_persisted: int
    persistence_failures: int

    model_config = {"from_attributes": True}
