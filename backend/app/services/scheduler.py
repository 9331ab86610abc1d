"""Daily cycle: ingestion, IaC mapping and rule evaluation for one organization."""

import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.providers.github import GitHubClient
from app.rules.engine import run_rules_for_org
from app.schemas.scheduler import SchedulerRunSummary, SchedulerStepResult
from app.services.connections import create_azure_client
from app.services.iac_mapping import reconcile_iac_mapping
from app.services.ingestion import (
    AzureClientFactory,
    ingest_metrics,
    ingest_resources,
    ingest_subscriptions,
)

logger = structlog.get_logger()


async def run_daily_cycle(
    db: AsyncSession,
    org_id: uuid.UUID,
    client_factory: AzureClientFactory = create_azure_client,
    repo_host: GitHubClient | None = None,
) -> SchedulerRunSummary:
    """
    Run every daily step in order, continuing past a failed step.

    Args:
        db: Database session
        org_id: Organization UUID
        client_factory: Builds Azure clients from the organization's credentials
        repo_host: Repository host client for the IaC mapping step

    Returns:
        Per-step success, timing and error message
    """
    steps: list[tuple[str, Callable[[], Awaitable[object]]]] = [
        ("ingestSubscriptions", lambda: ingest_subscriptions(db, org_id, client_factory)),
        ("ingestResources", lambda: ingest_resources(db, org_id, client_factory)),
        ("ingestMetrics", lambda: ingest_metrics(db, org_id, client_factory)),
        ("reconcileIaCMapping", lambda: reconcile_iac_mapping(db, org_id, repo_host)),
        ("recalculateRecommendations", lambda: run_rules_for_org(db, org_id, client_factory)),
    ]

    started_at = datetime.now(timezone.utc)
    results = []

    for name, run in steps:
        step_started_at = datetime.now(timezone.utc)
        try:
            await run()
        except Exception as e:
            await db.rollback()
            logger.exception(
                "scheduler.step_failed",
                step=name,
                organization_id=str(org_id),
                error=str(e),
            )
            results.append(
                SchedulerStepResult(
                    name=name,
                    success=False,
                    started_at=step_started_at,
                    finished_at=datetime.now(timezone.utc),
                    error=str(e) or e.__class__.__name__,
                )
            )
            continue

        results.append(
            SchedulerStepResult(
                name=name,
                success=True,
                started_at=step_started_at,
                finished_at=datetime.now(timezone.utc),
            )
        )

    summary = SchedulerRunSummary(
        organization_id=org_id,
        started_at=started_at,
        finished_at=datetime.now(timezone.utc),
        steps=results,
    )
    logger.info(
        "scheduler.cycle_completed",
        organization_id=str(org_id),
        failed_steps=summary.failed_steps,
    )
    return summary
