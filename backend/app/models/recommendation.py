"""Recommendation database model."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Float, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base


class RecommendationStatus(str, Enum):
    """Recommendation status enumeration."""

    OPEN = "open"
    IN_PR = "in_pr"
    MERGED = "merged"
    CLOSED = "closed"


class Recommendation(Base):
    """Rule output persisted per (organization, rule, resource)."""

    __tablename__ = "recommendations"
    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "rule_id",
            "resource_id",
            name="uq_recommendations_org_rule_resource",
        ),
    )

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
    subscription_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    resource_id: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        index=True,
    )
    rule_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )  # 'azure.vm.rightsize', ...

    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    impact_monthly: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
    )
    confidence: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RecommendationStatus.OPEN.value,
        index=True,
    )
    details: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Recommendation {self.rule_id} {self.resource_id} ({self.status})>"
