"""Rule engine: runs an organization's active rules and persists their findings."""

import uuid
from dataclasses import dataclass
from typing import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.providers.azure import AzureClient
from app.rules.registry import get_active_rules_for_org
from app.rules.types import RuleContext
from app.services.connections import AzureCredentials, create_azure_client, resolve_azure_connection
from app.services.reconciler import upsert_recommendation

logger = structlog.get_logger()


@dataclass
class RuleRunSummary:
    rules_executed: int = 0
    rules_failed: int = 0
    recommendations_persisted: int = 0
    persistence_failures: int = 0


async def run_rules_for_org(
    db: AsyncSession,
    org_id: uuid.UUID,
    client_factory: Callable[[AzureCredentials], AzureClient] = create_azure_client,
) -> RuleRunSummary:
    """
    Evaluate every active rule for an organization, one after another.

    A failing rule is logged and skipped; a failing upsert is logged and the
    remaining payloads are still persisted.

    Args:
        db: Database session
        org_id: Organization UUID
        client_factory: Builds the Azure client from the resolved credentials

    Returns:
        Counters for the run

    Raises:
        ConnectionNotConfiguredError: If the organization has no usable Azure connection
    """
    credentials = await resolve_azure_connection(db, org_id)
    azure = client_factory(credentials)

    summary = RuleRunSummary()
    rules = await get_active_rules_for_org(db, org_id)
    if not rules:
        logger.info("rules.none_active", organization_id=str(org_id))
        return summary

    ctx = RuleContext(org_id=org_id, db=db, azure=azure)

    for rule in rules:
        try:
            payloads = await rule.run(ctx)
        except Exception as e:
            await db.rollback()
            summary.rules_failed += 1
            logger.exception(
                "rules.execution_failed",
                rule_id=rule.id,
                organization_id=str(org_id),
                error=str(e),
            )
            continue

        summary.rules_executed += 1

        for payload in payloads:
            try:
                recommendation = await upsert_recommendation(ctx, rule.id, payload)
            except Exception as e:
                await db.rollback()
                summary.persistence_failures += 1
                logger.exception(
                    "rules.persist_failed",
                    rule_id=rule.id,
                    organization_id=str(org_id),
                    resource_id=payload.details.get("resourceId"),
                    error=str(e),
                )
                continue

            if recommendation is not None:
                summary.recommendations_persisted += 1

    logger.info(
        "rules.run_completed",
        organization_id=str(org_id),
        rules_executed=summary.rules_executed,
        rules_failed=summary.rules_failed,
        recommendations_persisted=summary.recommendations_persisted,
        persistence_failures=summary.persistence_failures,
    )
    return summary
