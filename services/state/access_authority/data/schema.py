"""Table models for callers, roles, permissions, endpoint policies and credentials."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    UniqueConstraint,
    false,
)

from packages.turnstile_shared.ids import RECORD_ID_LENGTH

metadata = MetaData()


def _id_column(name: str = "id") -> Column[str]:
    return Column(name, String(RECORD_ID_LENGTH), primary_key=True, nullable=False)


roles = Table(
    "roles",
    metadata,
    _id_column(),
    Column("name", String(128), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("name", name="uq_roles_name"),
)

permissions = Table(
    "permissions",
    metadata,
    _id_column(),
    Column("name", String(128), nullable=False),
    Column("description", String(512), nullable=False, server_default=""),
    Column("created_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("name", name="uq_permissions_name"),
)

callers = Table(
    "callers",
    metadata,
    _id_column(),
    Column("name", String(128), nullable=False),
    Column(
        "default_role_id",
        String(RECORD_ID_LENGTH),
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=True,
    ),
    Column("created_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("name", name="uq_callers_name"),
)

caller_roles = Table(
    "caller_roles",
    metadata,
    Column(
        "caller_id",
        String(RECORD_ID_LENGTH),
        ForeignKey("callers.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "role_id",
        String(RECORD_ID_LENGTH),
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    PrimaryKeyConstraint("caller_id", "role_id", name="pk_caller_roles"),
)

role_permissions = Table(
    "role_permissions",
    metadata,
    Column(
        "role_id",
        String(RECORD_ID_LENGTH),
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column(
        "permission_id",
        String(RECORD_ID_LENGTH),
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
    ),
    PrimaryKeyConstraint("role_id", "permission_id", name="pk_role_permissions"),
)

endpoint_policies = Table(
    "endpoint_policies",
    metadata,
    _id_column(),
    Column("service_name", String(256), nullable=False),
    Column("endpoint_name", String(256), nullable=False),
    Column(
        "required_permission_id",
        String(RECORD_ID_LENGTH),
        ForeignKey("permissions.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    UniqueConstraint(
        "service_name", "endpoint_name", name="uq_endpoint_policies_service_endpoint"
    ),
)

credentials = Table(
    "credentials",
    metadata,
    _id_column(),
    Column("secret_value", String(64), nullable=False),
    Column(
        "owner_caller_id",
        String(RECORD_ID_LENGTH),
        ForeignKey("callers.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("last_used_at", DateTime(timezone=True), nullable=True),
    Column("revoked", Boolean, nullable=False, server_default=false()),
    UniqueConstraint("secret_value", name="uq_credentials_secret_value"),
)

Index("ix_caller_roles_role_id", caller_roles.c.role_id)
Index("ix_role_permissions_permission_id", role_permissions.c.permission_id)
Index("ix_endpoint_policies_service_name", endpoint_policies.c.service_name)
Index("ix_credentials_owner_caller_id", credentials.c.owner_caller_id)
