"""CRUD operations for per-organization rule overrides."""

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.rules_config import RulesConfig


async def get_rules_config_record(db: AsyncSession, organization_id: uuid.UUID) -> RulesConfig | None:
    result = await db.execute(select(RulesConfig).where(RulesConfig.organization_id == organization_id))
    return result.scalar_one_or_none()


async def get_rules_config(db: AsyncSession, organization_id: uuid.UUID) -> dict[str, Any] | None:
    """
    Get the raw override document of an organization.

    If the organization never customized a rule, returns None (defaults apply).
    """
    record = await get_rules_config_record(db, organization_id)
    return record.config if record else None


async def set_rule_override(
    db: AsyncSession,
    organization_id: uuid.UUID,
    rule_id: str,
    enabled: bool | None = None,
    thresholds: dict[str, float] | None = None,
) -> dict[str, Any]:
    """
    Create or update the override of one rule.

    Threshold keys are merged into the existing override; keys not given keep
    their previous override (or keep inheriting the default).

    Args:
        db: Database session
        organization_id: Organization UUID
        rule_id: Rule identifier
        enabled: New enabled flag (None leaves it unchanged)
        thresholds: Threshold overrides to merge

    Returns:
        The full override document after the update
    """
    record = await get_rules_config_record(db, organization_id)
    config = dict(record.config) if record and isinstance(record.config, dict) else {}

    override = dict(config.get(rule_id) or {})
    if enabled is not None:
        override["enabled"] = enabled
    if thresholds:
        override["thresholds"] = {**(override.get("thresholds") or {}), **thresholds}
    config[rule_id] = override

    if record:
        record.config = config
    else:
        db.add(RulesConfig(organization_id=organization_id, config=config))

    await db.commit()
    return config


async def reset_rule_override(
    db: AsyncSession, organization_id: uuid.UUID, rule_id: str | None = None
) -> int:
    """
    Reset rules to their defaults.

    Args:
        db: Database session
        organization_id: Organization UUID
        rule_id: Optional rule (if None, resets all)

    Returns:
        Number of overrides removed
    """
    record = await get_rules_config_record(db, organization_id)
    if not record or not isinstance(record.config, dict):
        return 0

    if rule_id is None:
        count = len(record.config)
        await db.delete(record)
        await db.commit()
        return count

    if rule_id not in record.config:
        return 0

    record.config = {key: value for key, value in record.config.items() if key != rule_id}
    await db.commit()
    return 1
