"""Daily cycle API endpoints."""

import uuid
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_organization_or_404
from app.schemas.scheduler import SchedulerRunSummary
from app.services.scheduler import run_daily_cycle

logger = structlog.get_logger()

router = APIRouter()


class IngestRunRequest(BaseModel):
    organization_id: uuid.UUID


@router.post("/run", response_model=SchedulerRunSummary)
async def run_ingest(
    request: IngestRunRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SchedulerRunSummary:
    """
    Run the daily cycle for one organization now.

    Step failures are reported in the summary, not as an error status.
    """
    await get_organization_or_404(request.organization_id, db)

    logger.info("ingest.manual_run_requested", organization_id=str(request.organization_id))
    return await run_daily_cycle(db, request.organization_id)
