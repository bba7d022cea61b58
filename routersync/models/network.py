import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from routersync.db import Base


class PoolType(enum.Enum):
    active = "active"
    suspended = "suspended"
    cut_service = "cut_service"


class IpAddressStatus(enum.Enum):
    available = "available"
    assigned = "assigned"
    blocked = "blocked"


class Router(Base):
    """
    RouterOS access router that owns pools, PPPoE profiles and PPPoE users.

    The reconciliation engine only reads routers; connection details are
    passed through opaquely to the device client.
    """
    __tablename__ = "routers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    host: Mapped[str | None] = mapped_column(String(255))
    api_port: Mapped[int | None] = mapped_column(Integer, default=8728)
    api_username: Mapped[str | None] = mapped_column(String(120))
    api_password: Mapped[str | None] = mapped_column(String(255))
    use_ssl: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    pools = relationship("IpPool", back_populates="router")
    profiles = relationship("PPPoEProfile", back_populates="router")
    pppoe_users = relationship("PPPoEUser", back_populates="router")


class IpPool(Base):
    __tablename__ = "ip_pools"
    __table_args__ = (
        UniqueConstraint("router_id", "external_id", name="uq_ip_pools_router_external"),
        Index("ix_ip_pools_pool_type", "pool_type"),
        Index("ix_ip_pools_last_synced_at", "last_synced_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    router_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("routers.id"), nullable=False
    )
    # RouterOS ".id" (e.g. "*1"); stable across renames
    external_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    ranges: Mapped[str | None] = mapped_column(String(500))
    network_address: Mapped[str | None] = mapped_column(String(64))
    start_ip: Mapped[str | None] = mapped_column(String(64))
    end_ip: Mapped[str | None] = mapped_column(String(64))
    gateway: Mapped[str | None] = mapped_column(String(64))
    dns_primary: Mapped[str | None] = mapped_column(String(64))
    dns_secondary: Mapped[str | None] = mapped_column(String(64))
    pool_type: Mapped[PoolType] = mapped_column(
        Enum(PoolType, values_callable=lambda x: [e.value for e in x]),
        default=PoolType.active,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    router = relationship("Router", back_populates="pools")
    addresses = relationship("IpAddress", back_populates="pool")


class IpAddress(Base):
    __tablename__ = "ip_addresses"
    __table_args__ = (
        UniqueConstraint("pool_id", "address", name="uq_ip_addresses_pool_address"),
        Index("ix_ip_addresses_status", "status"),
        Index("ix_ip_addresses_pppoe_user_id", "pppoe_user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    pool_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("ip_pools.id"), nullable=False
    )
    address: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[IpAddressStatus] = mapped_column(
        Enum(IpAddressStatus, values_callable=lambda x: [e.value for e in x]),
        default=IpAddressStatus.available,
    )
    # Owner references are set together and cleared together.
    subscriber_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    pppoe_user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("pppoe_users.id", ondelete="SET NULL")
    )
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    pool = relationship("IpPool", back_populates="addresses")
    pppoe_user = relationship("PPPoEUser", back_populates="addresses")

    def assign_to(self, user) -> None:
        self.status = IpAddressStatus.assigned
        self.pppoe_user_id = user.id
        self.subscriber_id = user.subscriber_id

    def release(self) -> None:
        self.status = IpAddressStatus.available
        self.pppoe_user_id = None
        self.subscriber_id = None
