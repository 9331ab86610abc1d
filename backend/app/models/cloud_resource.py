"""CloudResource database model."""

import uuid
from datetime import datetime

from sqlalchemy import Float, ForeignKey, String
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base


class CloudResource(Base):
    """Discovered unit of billed infrastructure, refreshed on every sync."""

    __tablename__ = "cloud_resources"

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
    subscription_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    # Provider identification
    resource_id: Mapped[str] = mapped_column(
        String(1024),
        unique=True,
        nullable=False,
        index=True,
    )  # Full ARM id, e.g. /subscriptions/.../virtualMachines/vm-1
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )  # 'Microsoft.Compute/virtualMachines', ...
    resource_group: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    location: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    # Free-form provider data
    tags: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )
    metrics: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )  # {"cpuAverage": 12.5, "sizeGb": 128, ...}

    cost_monthly: Mapped[float | None] = mapped_column(
        Float,
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

    def __repr__(self) -> str:
        """String representation."""
        return f"<CloudResource {self.type} {self.name}>"
