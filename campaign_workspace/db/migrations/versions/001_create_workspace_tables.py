"""Create campaign, file record and audit tables

Revision ID: 001_workspace
Revises:
Create Date: 2026-10-19

"""
import sqlalchemy as sa
from alembic import op

# revision identifiers
revision = "001_workspace"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "campaigns",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner", sa.String(128), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_campaigns_owner_name", "campaigns", ["owner", "name"])

    op.create_table(
        "file_records",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner", sa.String(128), nullable=False, index=True),
        sa.Column("campaign_id", sa.String(36), nullable=False, index=True),
        sa.Column("file_name", sa.Text, nullable=False),
        sa.Column("content_type", sa.String(255), nullable=True),
        sa.Column("storage_key", sa.String(1024), nullable=False, unique=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_file_records_campaign_created", "file_records", ["campaign_id", "created_at"]
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "ts",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            index=True,
        ),
        sa.Column(
            "actor_kind",
            sa.Enum("human", "system", name="audit_actor_kind"),
            nullable=False,
        ),
        sa.Column("actor_id", sa.String(128), nullable=False, index=True),
        sa.Column(
            "action",
            sa.Enum("created", "updated", "deleted", "generated", name="audit_action"),
            nullable=False,
            index=True,
        ),
        sa.Column("entity_kind", sa.String(50), nullable=False, index=True),
        sa.Column("entity_id", sa.String(1024), nullable=False, index=True),
        sa.Column("campaign_id", sa.String(36), nullable=True, index=True),
        sa.Column("before", sa.JSON, nullable=True),
        sa.Column("after", sa.JSON, nullable=True),
        sa.Column("note", sa.Text, nullable=True),
    )
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_kind", "entity_id"])
    op.create_index("ix_audit_log_campaign_ts", "audit_log", ["campaign_id", "ts"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("file_records")
    op.drop_table("campaigns")

    op.execute("DROP TYPE IF EXISTS audit_action")
    op.execute("DROP TYPE IF EXISTS audit_actor_kind")
