"""Pytest configuration and fixtures for CostOps tests."""

import os
from datetime import datetime
from typing import Any, AsyncGenerator

from cryptography.fernet import Fernet

# Settings are read at import time
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app import models  # noqa: E402,F401
from app.core.database import Base, get_db  # noqa: E402
from app.crud import connection as connection_crud  # noqa: E402
from app.crud import organization as organization_crud  # noqa: E402
from app.main import app  # noqa: E402
from app.models.cloud_resource import CloudResource  # noqa: E402
from app.models.connection import ConnectionType  # noqa: E402
from app.models.organization import Organization  # noqa: E402
from app.models.recommendation import Recommendation, RecommendationStatus  # noqa: E402
from app.providers.azure import AzureAPIError  # noqa: E402
from app.providers.github import FileContent, PullRequestInfo, TreeEntry  # noqa: E402

# Use SQLite in-memory database for tests (faster and no setup needed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SUBSCRIPTION_ID = "abcdef12-3456-7890-abcd-ef1234567890"


def arm_id(resource_type: str, name: str, subscription_id: str = SUBSCRIPTION_ID) -> str:
    """Build an ARM resource id in resource group 'rg-prod'."""
    return f"/subscriptions/{subscription_id}/resourceGroups/rg-prod/providers/{resource_type}/{name}"


class FakeAzure:
    """In-memory Azure tenant shared by every client the factory builds."""

    def __init__(self) -> None:
        self.subscriptions: list[Any] = []
        self.resources: dict[str, list[Any]] = {}
        self.failing_subscriptions: set[str] = set()
        self.unattached_disks: list[Any] = []
        self.public_ips: list[Any] = []
        self.load_balancers: list[Any] = []
        self.cpu: dict[str, Any] = {}  # resource id -> float, None or an exception
        self.costs: dict[str, Any] = {}
        self.subscription_cost = 0.0
        self.metric_calls: list[tuple[str, float]] = []
        self.clients: list[str] = []
        self.errors: dict[str, Exception] = {}  # method name -> exception to raise

    def client_factory(self, credentials: Any, subscription_id: str | None = None) -> "FakeAzureClient":
        subscription_id = subscription_id or credentials.subscription_id
        self.clients.append(subscription_id)
        return FakeAzureClient(self, subscription_id)


class FakeAzureClient:
    """Implements the AzureClient operations used by rules and ingestion."""

    def __init__(self, account: FakeAzure, subscription_id: str) -> None:
        self.account = account
        self.subscription_id = subscription_id

    def _raise_if_configured(self, method: str) -> None:
        if method in self.account.errors:
            raise self.account.errors[method]

    async def list_subscriptions(self):
        self._raise_if_configured("list_subscriptions")
        return list(self.account.subscriptions)

    async def list_resources(self):
        if self.subscription_id in self.account.failing_subscriptions:
            raise AzureAPIError("Resource Graph unavailable", status_code=503)
        return list(self.account.resources.get(self.subscription_id, []))

    async def list_unattached(self, kind: str):
        self._raise_if_configured("list_unattached")
        if kind != "disk":
            raise ValueError(f"Unsupported unattached resource kind: {kind}")
        return list(self.account.unattached_disks)

    async def list_public_ips(self):
        self._raise_if_configured("list_public_ips")
        return list(self.account.public_ips)

    async def list_load_balancers(self):
        self._raise_if_configured("list_load_balancers")
        return list(self.account.load_balancers)

    async def _cpu(self, resource_id: str, lookback_days: float) -> float | None:
        self.account.metric_calls.append((resource_id, lookback_days))
        value = self.account.cpu.get(resource_id)
        if isinstance(value, Exception):
            raise value
        return value

    async def get_vm_cpu_average(self, vm_id: str, lookback_days: float) -> float | None:
        return await self._cpu(vm_id, lookback_days)

    async def get_sql_utilization(self, database_id: str, lookback_days: float) -> float | None:
        return await self._cpu(database_id, lookback_days)

    async def get_app_service_cpu(self, plan_id: str, lookback_days: float) -> float | None:
        return await self._cpu(plan_id, lookback_days)

    async def get_subscription_monthly_cost(self) -> float:
        self._raise_if_configured("get_subscription_monthly_cost")
        return self.account.subscription_cost

    async def estimate_resource_monthly_cost(self, resource_id: str) -> float:
        value = self.account.costs.get(resource_id, 0.0)
        if isinstance(value, Exception):
            raise value
        return value


class FakeGitHub:
    """In-memory repository host holding one repository's default branch."""

    def __init__(self) -> None:
        self.files: dict[str, str] = {}
        self.tree_calls = 0
        self.created_branches: list[tuple[str, str, str]] = []
        self.commits: list[dict[str, Any]] = []
        self.pull_requests: list[dict[str, Any]] = []
        self.errors: dict[str, Exception] = {}

    def _raise_if_configured(self, method: str) -> None:
        if method in self.errors:
            raise self.errors[method]

    async def get_tree(self, repo: str, ref: str | None = None) -> list[TreeEntry]:
        self.tree_calls += 1
        self._raise_if_configured("get_tree")
        directories = {path.rsplit("/", 1)[0] for path in self.files if "/" in path}
        return [TreeEntry(path=path, kind="tree") for path in sorted(directories)] + [
            TreeEntry(path=path, kind="blob") for path in self.files
        ]

    async def get_file_content(self, repo: str, path: str, ref: str | None = None) -> FileContent:
        self._raise_if_configured("get_file_content")
        return FileContent(content=self.files[path], sha=f"sha-{path}")

    async def create_branch(self, repo: str, base: str, branch: str) -> None:
        self._raise_if_configured("create_branch")
        self.created_branches.append((repo, base, branch))

    async def commit_files(self, repo: str, branch: str, files: list, message: str) -> str:
        self._raise_if_configured("commit_files")
        self.commits.append({"repo": repo, "branch": branch, "files": files, "message": message})
        return f"commit-{len(self.commits)}"

    async def open_pull_request(
        self,
        repo: str,
        head: str,
        base: str,
        title: str,
        body: str,
        labels: list[str] | None = None,
    ) -> PullRequestInfo:
        self._raise_if_configured("open_pull_request")
        number = len(self.pull_requests) + 1
        self.pull_requests.append(
            {"repo": repo, "head": head, "base": base, "title": title, "body": body, "labels": labels}
        )
        return PullRequestInfo(
            number=number,
            url=f"https://api.github.com/repos/{repo}/pulls/{number}",
            html_url=f"https://github.com/{repo}/pull/{number}",
            head_ref=head,
        )


@pytest.fixture
async def engine():
    """Create async engine for tests with SQLite in-memory database."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,  # StaticPool for in-memory SQLite
        connect_args={"check_same_thread": False},  # Required for SQLite
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after tests
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async_session_maker = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session_maker() as session:
        yield session
        # Rollback to clean up any changes (but allows commits during test)
        await session.rollback()


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database session override."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def organization(db_session: AsyncSession) -> Organization:
    """Create a test organization."""
    return await organization_crud.create_organization(db_session, name="Acme", slug="acme")


@pytest.fixture
def mock_azure_credentials() -> dict:
    """Mock Azure credentials for testing."""
    return {
        "tenant_id": "12345678-1234-1234-1234-123456789abc",
        "client_id": "87654321-4321-4321-4321-abc987654321",
        "client_secret": "mock-azure-client-secret-for-testing",
        "subscription_id": SUBSCRIPTION_ID,
    }


@pytest.fixture
async def azure_connection(db_session: AsyncSession, organization: Organization, mock_azure_credentials: dict):
    """Connected Azure service principal for the test organization."""
    return await connection_crud.create_connection(
        db_session,
        organization.id,
        ConnectionType.AZURE,
        credentials=mock_azure_credentials,
    )


@pytest.fixture
def fake_azure() -> FakeAzure:
    return FakeAzure()


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def make_resource(db_session: AsyncSession, organization: Organization):
    """Factory storing a CloudResource for the test organization."""

    async def _make_resource(
        name: str,
        resource_type: str,
        tags: dict | None = None,
        metrics: dict | None = None,
        cost_monthly: float | None = None,
        resource_id: str | None = None,
        subscription_id: str = SUBSCRIPTION_ID,
    ) -> CloudResource:
        resource = CloudResource(
            organization_id=organization.id,
            subscription_id=subscription_id,
            resource_id=resource_id or arm_id(resource_type, name, subscription_id),
            name=name,
            type=resource_type,
            resource_group="rg-prod",
            location="westeurope",
            tags=tags or {},
            metrics=metrics or {},
            cost_monthly=cost_monthly,
        )
        db_session.add(resource)
        await db_session.commit()
        return resource

    return _make_resource


@pytest.fixture
def make_recommendation(db_session: AsyncSession, organization: Organization):
    """Factory storing a Recommendation for the test organization."""

    async def _make_recommendation(
        resource: CloudResource,
        rule_id: str = "azure.vm.rightsize",
        details: dict | None = None,
        status: RecommendationStatus = RecommendationStatus.OPEN,
        title: str | None = None,
        created_at: datetime | None = None,
    ) -> Recommendation:
        recommendation = Recommendation(
            organization_id=organization.id,
            subscription_id=resource.subscription_id,
            resource_id=resource.resource_id,
            rule_id=rule_id,
            title=title or f"Right-size {resource.name}",
            description="Average CPU usage was low.",
            impact_monthly=240.0,
            confidence=0.6,
            status=status.value,
            details={"resourceId": resource.resource_id, **(details or {})},
        )
        if created_at is not None:
            recommendation.created_at = created_at
        db_session.add(recommendation)
        await db_session.commit()
        return recommendation

    return _make_recommendation

