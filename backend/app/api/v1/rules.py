"""Rule configuration API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_organization_or_404
from app.crud import rules_config as rules_config_crud
from app.models.organization import Organization
from app.rules.engine import run_rules_for_org
from app.rules.registry import describe_rules_for_org, get_rule_definition
from app.schemas.rules import RuleDescription, RuleOverrideUpdate, RuleRunRequest, RuleRunResponse

router = APIRouter()


def _ensure_rule_exists(rule_id: str) -> None:
    if get_rule_definition(rule_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown rule: {rule_id}",
        )


async def _describe_rule(db: AsyncSession, organization: Organization, rule_id: str) -> RuleDescription:
    descriptions = await describe_rules_for_org(db, organization.id)
    return next(
        RuleDescription.model_validate(description, from_attributes=True)
        for description in descriptions
        if description["id"] == rule_id
    )


@router.get("/", response_model=list[RuleDescription])
async def list_rules(
    organization: Annotated[Organization, Depends(get_organization_or_404)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[RuleDescription]:
    """Every catalog rule with its default and effective configuration."""
    descriptions = await describe_rules_for_org(db, organization.id)
    return [
        RuleDescription.model_validate(description, from_attributes=True)
        for description in descriptions
    ]


@router.put("/{rule_id}", response_model=RuleDescription)
async def update_rule(
    rule_id: str,
    override: RuleOverrideUpdate,
    organization: Annotated[Organization, Depends(get_organization_or_404)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RuleDescription:
    """Override the enabled flag and/or thresholds of one rule."""
    _ensure_rule_exists(rule_id)

    await rules_config_crud.set_rule_override(
        db,
        organization.id,
        rule_id,
        enabled=override.enabled,
        thresholds=override.thresholds,
    )
    return await _describe_rule(db, organization, rule_id)


@router.delete("/{rule_id}", response_model=RuleDescription)
async def reset_rule(
    rule_id: str,
    organization: Annotated[Organization, Depends(get_organization_or_404)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RuleDescription:
    """Reset one rule to its catalog defaults."""
    _ensure_rule_exists(rule_id)

    await rules_config_crud.reset_rule_override(db, organization.id, rule_id)
    return await _describe_rule(db, organization, rule_id)


@router.post("/run", response_model=RuleRunResponse)
async def run_rules(
    request: RuleRunRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RuleRunResponse:
    """
    Evaluate the organization's active rules now.

    Answers 409 when the organization has no usable Azure connection.
    """
    await get_organization_or_404(request.organization_id, db)

    summary = await run_rules_for_org(db, request.organization_id)
    return RuleRunResponse.model_validate(summary, from_attributes=True)
