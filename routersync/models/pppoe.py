import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from routersync.db import Base


class PPPoEUserStatus(enum.Enum):
    active = "active"
    disabled = "disabled"


class PPPoEProfile(Base):
    """PPP profile (``/ppp/profile``) mirrored from a router."""
    __tablename__ = "pppoe_profiles"
    __table_args__ = (
        UniqueConstraint(
            "router_id", "external_id", name="uq_pppoe_profiles_router_external"
        ),
        Index("ix_pppoe_profiles_service_package_id", "service_package_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    router_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("routers.id"), nullable=False
    )
    external_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    rate_limit: Mapped[str | None] = mapped_column(String(120))
    burst_limit: Mapped[str | None] = mapped_column(String(120))
    burst_threshold: Mapped[str | None] = mapped_column(String(120))
    burst_time: Mapped[str | None] = mapped_column(String(60))
    priority: Mapped[str | None] = mapped_column(String(20))
    min_rate: Mapped[str | None] = mapped_column(String(120))
    local_address: Mapped[str | None] = mapped_column(String(120))
    remote_address: Mapped[str | None] = mapped_column(String(120))
    dns_server: Mapped[str | None] = mapped_column(String(255))
    only_one: Mapped[bool] = mapped_column(Boolean, default=False)
    # Billing linkage is set locally and never touched by reconciliation.
    service_package_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    router = relationship("Router", back_populates="profiles")


class PPPoEUser(Base):
    """PPP secret (``/ppp/secret``) mirrored from a router."""
    __tablename__ = "pppoe_users"
    __table_args__ = (
        UniqueConstraint("router_id", "external_id", name="uq_pppoe_users_router_external"),
        Index("ix_pppoe_users_subscriber_id", "subscriber_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    router_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("routers.id"), nullable=False
    )
    external_id: Mapped[str] = mapped_column(String(64), nullable=False)
    username: Mapped[str] = mapped_column(String(120), nullable=False)
    profile_name: Mapped[str | None] = mapped_column(String(120))
    profile_external_id: Mapped[str | None] = mapped_column(String(64))
    status: Mapped[PPPoEUserStatus] = mapped_column(
        Enum(PPPoEUserStatus, values_callable=lambda x: [e.value for e in x]),
        default=PPPoEUserStatus.active,
    )
    static_address: Mapped[str | None] = mapped_column(String(64))
    subscriber_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    comment: Mapped[str | None] = mapped_column(String(255))
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    router = relationship("Router", back_populates="pppoe_users")
    addresses = relationship("IpAddress", back_populates="pppoe_user")
