"""Connection database model (cloud provider and repository host credentials)."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import ForeignKey, LargeBinary, String
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.core.database import Base


class ConnectionType(str, Enum):
    """Connection type enumeration."""

    AZURE = "azure"
    GITHUB = "github"


class ConnectionStatus(str, Enum):
    """Connection status enumeration."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class Connection(Base):
    """External account connected to an organization."""

    __tablename__ = "connections"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
    )  # 'azure', 'github'
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ConnectionStatus.CONNECTED.value,
    )

    # Encrypted secrets (Azure service principal)
    credentials_encrypted: Mapped[bytes | None] = mapped_column(
        LargeBinary,
        nullable=True,
    )

    # Non-secret settings, e.g. {"repos": ["acme/infra"]} for GitHub
    data: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Relationships
    organization: Mapped["Organization"] = relationship(  # type: ignore
        "Organization", back_populates="connections"
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Connection {self.type} ({self.status}) for org {self.organization_id}>"
