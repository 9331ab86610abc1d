"""Celery background tasks for the daily cost cycle."""

import asyncio
import uuid
from typing import Any, Coroutine

import structlog

from app.core.database import AsyncSessionLocal
from app.crud import connection as connection_crud
from app.models.connection import ConnectionType
from app.services.scheduler import run_daily_cycle
from app.workers.celery_app import celery_app

logger = structlog.get_logger()


def _run(coro: Coroutine[Any, Any, dict[str, Any]]) -> dict[str, Any]:
    # Get or create event loop for Celery solo pool
    try:
        loop = asyncio.get_event_loop()
        if loop.is_closed():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

    return loop.run_until_complete(coro)


@celery_app.task(name="app.workers.tasks.run_daily_cycle_for_org")
def run_daily_cycle_for_org(organization_id: str) -> dict[str, Any]:
    """
    Run the daily cycle for one organization.

    Args:
        organization_id: Organization UUID as string

    Returns:
        Dict with the per-step summary
    """
    return _run(_run_daily_cycle_for_org_async(organization_id))


async def _run_daily_cycle_for_org_async(organization_id: str) -> dict[str, Any]:
    async with AsyncSessionLocal() as db:
        summary = await run_daily_cycle(db, uuid.UUID(organization_id))

    failed_steps = summary.failed_steps
    return {
        "status": "partial" if failed_steps else "success",
        "organization_id": organization_id,
        "failed_steps": failed_steps,
        "summary": summary.model_dump(mode="json"),
    }


@celery_app.task(name="app.workers.tasks.run_daily_cycles")
def run_daily_cycles() -> dict[str, Any]:
    """
    Queue a daily cycle for every organization with a connected Azure account.

    Returns:
        Dict with the queued organization ids
    """
    return _run(_run_daily_cycles_async())


async def _run_daily_cycles_async() -> dict[str, Any]:
    async with AsyncSessionLocal() as db:
        organization_ids = await connection_crud.get_organization_ids_with_connection(
            db, ConnectionType.AZURE
        )

    queued = []
    for organization_id in organization_ids:
        run_daily_cycle_for_org.delay(str(organization_id))
        queued.append(str(organization_id))

    logger.info("tasks.daily_cycles_queued", organizations=len(queued))
    return {
        "status": "success",
        "organizations_queued": len(queued),
        "organization_ids": queued,
    }
