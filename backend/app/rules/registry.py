"""Rule registry: merges per-organization overrides into the catalog defaults."""

import uuid
from typing import Any, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from app.crud import rules_config as rules_config_crud
from app.rules.azure_rules import AZURE_RULE_DEFINITIONS
from app.rules.helpers import read_number
from app.rules.types import Rule, RuleConfig, RuleDefinition


def merge_config(default: RuleConfig, override: Mapping[str, Any] | None) -> RuleConfig:
    """
    Layer one rule's override over its default config.

    Args:
        default: Catalog default
        override: {"enabled"?: bool, "thresholds"?: {name: number}}; unset keys inherit

    Returns:
        Effective config
    """
    if not override:
        return default

    enabled = override.get("enabled")
    if not isinstance(enabled, bool):
        enabled = default.enabled

    thresholds = dict(default.thresholds)
    overridden = override.get("thresholds")
    if isinstance(overridden, Mapping):
        for name, value in overridden.items():
            number = read_number(value)
            if number is not None:
                thresholds[name] = number

    return RuleConfig(enabled=enabled, thresholds=thresholds)


def normalize_rules_config(value: Any) -> dict[str, dict[str, Any]]:
    """Keep only rule-id -> mapping entries of a stored config document."""
    if not isinstance(value, Mapping):
        return {}
    return {
        rule_id: dict(override)
        for rule_id, override in value.items()
        if isinstance(override, Mapping)
    }


def bind_rule(definition: RuleDefinition, config: RuleConfig) -> Rule:
    """Close a definition's executor over an effective config."""

    async def run(ctx):
        return await definition.executor(ctx, config)

    return Rule(id=definition.id, label=definition.label, config=config, run=run)


def get_rule_definition(rule_id: str) -> RuleDefinition | None:
    return next((definition for definition in AZURE_RULE_DEFINITIONS if definition.id == rule_id), None)


AZURE_RULES = [bind_rule(definition, definition.default_config) for definition in AZURE_RULE_DEFINITIONS]


async def get_active_rules_for_org(db: AsyncSession, org_id: uuid.UUID) -> list[Rule]:
    """
    Resolve the enabled rules of an organization, in catalog order.

    Args:
        db: Database session
        org_id: Organization UUID

    Returns:
        Rules bound to their effective config
    """
    overrides = normalize_rules_config(await rules_config_crud.get_rules_config(db, org_id))

    active_rules = []
    for definition in AZURE_RULE_DEFINITIONS:
        config = merge_config(definition.default_config, overrides.get(definition.id))
        if config.enabled:
            active_rules.append(bind_rule(definition, config))
    return active_rules


async def describe_rules_for_org(db: AsyncSession, org_id: uuid.UUID) -> list[dict[str, Any]]:
    """Default and effective config of every catalog rule, for the settings page."""
    overrides = normalize_rules_config(await rules_config_crud.get_rules_config(db, org_id))

    result = []
    for definition in AZURE_RULE_DEFINITIONS:
        override = overrides.get(definition.id)
        effective = merge_config(definition.default_config, override)
        result.append(
            {
                "id": definition.id,
                "label": definition.label,
                "default_config": definition.default_config,
                "effective_config": effective,
                "is_customized": bool(override),
            }
        )
    return result
