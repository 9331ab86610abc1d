"""CRUD operations for connections."""

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import credential_encryption
from app.models.connection import Connection, ConnectionStatus, ConnectionType


async def create_connection(
    db: AsyncSession,
    organization_id: uuid.UUID,
    connection_type: ConnectionType | str,
    credentials: dict[str, Any] | None = None,
    data: dict[str, Any] | None = None,
    status: ConnectionStatus | str = ConnectionStatus.CONNECTED,
) -> Connection:
    """
    Create a connection, encrypting its secrets.

    Args:
        db: Database session
        organization_id: Owning organization
        connection_type: 'azure' or 'github'
        credentials: Secrets to encrypt (Azure service principal)
        data: Non-secret settings (GitHub repositories)
        status: Initial status

    Returns:
        Created connection
    """
    connection = Connection(
        organization_id=organization_id,
        type=ConnectionType(connection_type).value,
        status=ConnectionStatus(status).value,
        credentials_encrypted=(
            credential_encryption.encrypt_credentials(credentials) if credentials else None
        ),
        data=data,
    )
    db.add(connection)
    await db.commit()
    await db.refresh(connection)
    return connection


async def get_connections(
    db: AsyncSession,
    organization_id: uuid.UUID,
    connection_type: ConnectionType | str,
    status: ConnectionStatus | str = ConnectionStatus.CONNECTED,
) -> list[Connection]:
    """
    Get an organization's connections of one type, most recently updated first.

    Args:
        db: Database session
        organization_id: Organization UUID
        connection_type: 'azure' or 'github'
        status: Status filter

    Returns:
        List of connections
    """
    result = await db.execute(
        select(Connection)
        .where(
            Connection.organization_id == organization_id,
            Connection.type == ConnectionType(connection_type).value,
            Connection.status == ConnectionStatus(status).value,
        )
        .order_by(Connection.updated_at.desc(), Connection.created_at.desc())
    )
    return list(result.scalars().all())


async def get_organization_ids_with_connection(
    db: AsyncSession, connection_type: ConnectionType | str
) -> list[uuid.UUID]:
    """Organizations having at least one connected connection of the given type."""
    result = await db.execute(
        select(Connection.organization_id)
        .where(
            Connection.type == ConnectionType(connection_type).value,
            Connection.status == ConnectionStatus.CONNECTED.value,
        )
        .distinct()
    )
    return list(result.scalars().all())


def decrypt_credentials(connection: Connection) -> dict[str, Any]:
    """
    Decrypt a connection's secrets.

    Raises:
        cryptography.fernet.InvalidToken: If the secrets were encrypted with another key
        ValueError: If the decrypted document is not a JSON object
    """
    if not connection.credentials_encrypted:
        return {}
    return credential_encryption.decrypt_credentials(connection.credentials_encrypted)
