"""Tests for the Celery tasks and beat schedule."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.workers import tasks
from app.workers.celery_app import celery_app


@pytest.fixture
def task_sessions(engine, monkeypatch):
    """Point the tasks at the test database."""
    sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(tasks, "AsyncSessionLocal", sessions)
    return sessions


class TestBeatSchedule:
    def test_daily_cycles_are_scheduled(self):
        entry = celery_app.conf.beat_schedule["run-daily-cycles"]

        assert entry["task"] == "app.workers.tasks.run_daily_cycles"
        assert entry["schedule"].hour == {settings.DAILY_CYCLE_HOUR}
        assert entry["schedule"].minute == {0}


class TestDailyCycleTasks:
    @pytest.mark.asyncio
    async def test_cycle_for_org_reports_partial_run(self, task_sessions, organization, db_session):
        org_id = str(organization.id)
        await db_session.commit()

        result = await tasks._run_daily_cycle_for_org_async(org_id)

        assert result["status"] == "partial"
        assert result["organization_id"] == org_id
        assert "ingestSubscriptions" in result["failed_steps"]
        assert [step["name"] for step in result["summary"]["steps"]][-1] == "recalculateRecommendations"

    @pytest.mark.asyncio
    async def test_cycles_are_queued_per_connected_org(self, task_sessions, organization, azure_connection, monkeypatch):
        queued = []
        monkeypatch.setattr(tasks.run_daily_cycle_for_org, "delay", queued.append)

        result = await tasks._run_daily_cycles_async()

        assert result["organizations_queued"] == 1
        assert queued == [str(organization.id)]
