"""Resolution of an organization's external connections."""

import uuid
from dataclasses import dataclass

import structlog
from cryptography.fernet import InvalidToken
from sqlalchemy.ext.asyncio import AsyncSession

from app.crud import connection as connection_crud
from app.models.connection import ConnectionType
from app.providers.azure import AzureClient
from app.rules.helpers import read_string

logger = structlog.get_logger()

AZURE_CREDENTIAL_FIELDS = ("tenant_id", "client_id", "client_secret", "subscription_id")
REPOSITORY_DATA_KEYS = ("repo", "repos", "repositories")


class ConnectionNotConfiguredError(Exception):
    """Raised when an organization has no usable connection of the required type."""


@dataclass(frozen=True)
class AzureCredentials:
    tenant_id: str
    client_id: str
    client_secret: str
    subscription_id: str


async def resolve_azure_connection(db: AsyncSession, org_id: uuid.UUID) -> AzureCredentials:
    """
    Credentials of the most recently updated connected Azure connection.

    Connections missing one of the service principal fields are ignored.

    Raises:
        ConnectionNotConfiguredError: If no connection qualifies
    """
    for connection in await connection_crud.get_connections(db, org_id, ConnectionType.AZURE):
        try:
            credentials = connection_crud.decrypt_credentials(connection)
        except (InvalidToken, ValueError) as e:
            logger.warning(
                "connections.azure.decrypt_failed",
                organization_id=str(org_id),
                connection_id=str(connection.id),
                error=str(e),
            )
            continue

        values = {field: read_string(credentials.get(field)) for field in AZURE_CREDENTIAL_FIELDS}
        if all(values.values()):
            return AzureCredentials(**values)

    raise ConnectionNotConfiguredError(f"Azure connection is not configured for organization {org_id}")


def create_azure_client(credentials: AzureCredentials, subscription_id: str | None = None) -> AzureClient:
    """Build a client for the connection's subscription, or for another one it can reach."""
    return AzureClient(
        tenant_id=credentials.tenant_id,
        client_id=credentials.client_id,
        client_secret=credentials.client_secret,
        subscription_id=subscription_id or credentials.subscription_id,
    )


async def get_connected_repositories(db: AsyncSession, org_id: uuid.UUID) -> list[str]:
    """
    Repositories ("owner/name") listed on the organization's connected GitHub connections.

    Values may be a single string or a list under any of the repository keys;
    duplicates are dropped and first-seen order is kept.
    """
    repositories: list[str] = []
    for connection in await connection_crud.get_connections(db, org_id, ConnectionType.GITHUB):
        data = connection.data if isinstance(connection.data, dict) else {}
        for key in REPOSITORY_DATA_KEYS:
            value = data.get(key)
            candidates = value if isinstance(value, list) else [value]
            for candidate in candidates:
                repo = read_string(candidate)
                if repo and repo not in repositories:
                    repositories.append(repo)
    return repositories
