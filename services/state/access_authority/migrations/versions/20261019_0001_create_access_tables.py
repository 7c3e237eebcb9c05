"""create access authority tables"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

_ID = sa.String(length=26)


def upgrade() -> None:
    """Create caller, role, permission, endpoint policy and credential tables."""
    op.create_table(
        "roles",
        sa.Column("id", _ID, primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("name", name="uq_roles_name"),
    )

    op.create_table(
        "permissions",
        sa.Column("id", _ID, primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.String(length=512), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("name", name="uq_permissions_name"),
    )

    op.create_table(
        "callers",
        sa.Column("id", _ID, primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column(
            "default_role_id",
            _ID,
            sa.ForeignKey("roles.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("name", name="uq_callers_name"),
    )

    op.create_table(
        "caller_roles",
        sa.Column(
            "caller_id",
            _ID,
            sa.ForeignKey("callers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "role_id",
            _ID,
            sa.ForeignKey("roles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("caller_id", "role_id", name="pk_caller_roles"),
    )
    op.create_index("ix_caller_roles_role_id", "caller_roles", ["role_id"])

    op.create_table(
        "role_permissions",
        sa.Column(
            "role_id",
            _ID,
            sa.ForeignKey("roles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "permission_id",
            _ID,
            sa.ForeignKey("permissions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("role_id", "permission_id", name="pk_role_permissions"),
    )
    op.create_index(
        "ix_role_permissions_permission_id", "role_permissions", ["permission_id"]
    )

    op.create_table(
        "endpoint_policies",
        sa.Column("id", _ID, primary_key=True, nullable=False),
        sa.Column("service_name", sa.String(length=256), nullable=False),
        sa.Column("endpoint_name", sa.String(length=256), nullable=False),
        sa.Column(
            "required_permission_id",
            _ID,
            sa.ForeignKey("permissions.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "service_name",
            "endpoint_name",
            name="uq_endpoint_policies_service_endpoint",
        ),
    )
    op.create_index(
        "ix_endpoint_policies_service_name", "endpoint_policies", ["service_name"]
    )

    op.create_table(
        "credentials",
        sa.Column("id", _ID, primary_key=True, nullable=False),
        sa.Column("secret_value", sa.String(length=64), nullable=False),
        sa.Column(
            "owner_caller_id",
            _ID,
            sa.ForeignKey("callers.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("secret_value", name="uq_credentials_secret_value"),
    )
    op.create_index("ix_credentials_owner_caller_id", "credentials", ["owner_caller_id"])


def downgrade() -> None:
    """Drop access authority tables."""
    op.drop_index("ix_credentials_owner_caller_id", table_name="credentials")
    op.drop_table("credentials")
    op.drop_index("ix_endpoint_policies_service_name", table_name="endpoint_policies")
    op.drop_table("endpoint_policies")
    op.drop_index("ix_role_permissions_permission_id", table_name="role_permissions")
    op.drop_table("role_permissions")
    op.drop_index("ix_caller_roles_role_id", table_name="caller_roles")
    op.drop_table("caller_roles")
    op.drop_table("callers")
    op.drop_table("permissions")
    op.drop_table("roles")
