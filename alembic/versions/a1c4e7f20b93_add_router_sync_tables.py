"""add router sync tables

Revision ID: a1c4e7f20b93
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = "a1c4e7f20b93"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


pool_type = sa.Enum("active", "suspended", "cut_service", name="pooltype")
ip_address_status = sa.Enum("available", "assigned", "blocked", name="ipaddressstatus")
pppoe_user_status = sa.Enum("active", "disabled", name="pppoeuserstatus")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "routers" not in existing_tables:
        op.create_table(
            "routers",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("name", sa.String(160), nullable=False),
            sa.Column("host", sa.String(255), nullable=True),
            sa.Column("api_port", sa.Integer, nullable=True, server_default="8728"),
            sa.Column("api_username", sa.String(120), nullable=True),
            sa.Column("api_password", sa.String(255), nullable=True),
            sa.Column("use_ssl", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column("notes", sa.Text, nullable=True),
            sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
            *_timestamps(),
        )

    if "ip_pools" not in existing_tables:
        op.create_table(
            "ip_pools",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("router_id", UUID(as_uuid=True), sa.ForeignKey("routers.id"), nullable=False),
            sa.Column("external_id", sa.String(64), nullable=False),
            sa.Column("name", sa.String(120), nullable=False),
            sa.Column("ranges", sa.String(500), nullable=True),
            sa.Column("network_address", sa.String(64), nullable=True),
            sa.Column("start_ip", sa.String(64), nullable=True),
            sa.Column("end_ip", sa.String(64), nullable=True),
            sa.Column("gateway", sa.String(64), nullable=True),
            sa.Column("dns_primary", sa.String(64), nullable=True),
            sa.Column("dns_secondary", sa.String(64), nullable=True),
            sa.Column("pool_type", pool_type, nullable=False, server_default="active"),
            sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
            sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("router_id", "external_id", name="uq_ip_pools_router_external"),
        )
        op.create_index("ix_ip_pools_pool_type", "ip_pools", ["pool_type"])
        op.create_index("ix_ip_pools_last_synced_at", "ip_pools", ["last_synced_at"])

    if "pppoe_profiles" not in existing_tables:
        op.create_table(
            "pppoe_profiles",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("router_id", UUID(as_uuid=True), sa.ForeignKey("routers.id"), nullable=False),
            sa.Column("external_id", sa.String(64), nullable=False),
            sa.Column("name", sa.String(120), nullable=False),
            sa.Column("rate_limit", sa.String(120), nullable=True),
            sa.Column("burst_limit", sa.String(120), nullable=True),
            sa.Column("burst_threshold", sa.String(120), nullable=True),
            sa.Column("burst_time", sa.String(60), nullable=True),
            sa.Column("priority", sa.String(20), nullable=True),
            sa.Column("local_address", sa.String(120), nullable=True),
            sa.Column("remote_address", sa.String(120), nullable=True),
            sa.Column("dns_server", sa.String(255), nullable=True),
            sa.Column("only_one", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column("service_package_id", UUID(as_uuid=True), nullable=True),
            sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
            sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint(
                "router_id", "external_id", name="uq_pppoe_profiles_router_external"
            ),
        )
        op.create_index(
            "ix_pppoe_profiles_service_package_id", "pppoe_profiles", ["service_package_id"]
        )

    if "pppoe_users" not in existing_tables:
        op.create_table(
            "pppoe_users",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("router_id", UUID(as_uuid=True), sa.ForeignKey("routers.id"), nullable=False),
            sa.Column("external_id", sa.String(64), nullable=False),
            sa.Column("username", sa.String(120), nullable=False),
            sa.Column("profile_name", sa.String(120), nullable=True),
            sa.Column("profile_external_id", sa.String(64), nullable=True),
            sa.Column("status", pppoe_user_status, nullable=False, server_default="active"),
            sa.Column("static_address", sa.String(64), nullable=True),
            sa.Column("subscriber_id", UUID(as_uuid=True), nullable=True),
            sa.Column("comment", sa.String(255), nullable=True),
            sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("router_id", "external_id", name="uq_pppoe_users_router_external"),
        )
        op.create_index("ix_pppoe_users_subscriber_id", "pppoe_users", ["subscriber_id"])

    if "ip_addresses" not in existing_tables:
        op.create_table(
            "ip_addresses",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("pool_id", UUID(as_uuid=True), sa.ForeignKey("ip_pools.id"), nullable=False),
            sa.Column("address", sa.String(64), nullable=False),
            sa.Column("status", ip_address_status, nullable=False, server_default="available"),
            sa.Column("subscriber_id", UUID(as_uuid=True), nullable=True),
            sa.Column(
                "pppoe_user_id",
                UUID(as_uuid=True),
                sa.ForeignKey("pppoe_users.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("notes", sa.Text, nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("pool_id", "address", name="uq_ip_addresses_pool_address"),
        )
        op.create_index("ix_ip_addresses_status", "ip_addresses", ["status"])
        op.create_index("ix_ip_addresses_pppoe_user_id", "ip_addresses", ["pppoe_user_id"])

    if "router_sync_state" not in existing_tables:
        op.create_table(
            "router_sync_state",
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("key", sa.String(120), nullable=False),
            sa.Column("value_json", sa.JSON, nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("key", name="uq_router_sync_state_key"),
        )


def downgrade() -> None:
    op.drop_table("router_sync_state")
    op.drop_index("ix_ip_addresses_pppoe_user_id", table_name="ip_addresses")
    op.drop_index("ix_ip_addresses_status", table_name="ip_addresses")
    op.drop_table("ip_addresses")
    op.drop_index("ix_pppoe_users_subscriber_id", table_name="pppoe_users")
    op.drop_table("pppoe_users")
    op.drop_index("ix_pppoe_profiles_service_package_id", table_name="pppoe_profiles")
    op.drop_table("pppoe_profiles")
    op.drop_index("ix_ip_pools_last_synced_at", table_name="ip_pools")
    op.drop_index("ix_ip_pools_pool_type", table_name="ip_pools")
    op.drop_table("ip_pools")
    op.drop_table("routers")
    bind = op.get_bind()
    pppoe_user_status.drop(bind, checkfirst=True)
    ip_address_status.drop(bind, checkfirst=True)
    pool_type.drop(bind, checkfirst=True)
