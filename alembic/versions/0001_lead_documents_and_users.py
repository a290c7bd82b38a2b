"""lead_documents y users

Revision ID: 0001
Revises:
Create Date: 2026-01-15
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

ROLES = (
    "ADMIN", "ADMINISTRATOR", "SUPERVISOR", "LOAN_EXECUTIVE", "INVESTMENT_EXECUTIVE",
    "LEGAL", "COMMERCIAL", "CLOSER", "APPRAISAL_MANAGER",
)


def upgrade() -> None:
    op.create_table(
        "lead_documents",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("data", postgresql.JSONB(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    # Consultas de dashboards por asignado y por closer
    op.create_index(
        "ix_lead_documents_assigned_to", "lead_documents",
        [sa.text("(data ->> 'assigned_to')")],
    )
    op.create_index(
        "ix_lead_documents_closer_assigned_to", "lead_documents",
        [sa.text("(data ->> 'closer_assigned_to')")],
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("role", sa.Enum(*ROLES, name="userrole"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])


def downgrade() -> None:
    op.drop_index("ix_users_role", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)
    op.drop_index("ix_lead_documents_closer_assigned_to", table_name="lead_documents")
    op.drop_index("ix_lead_documents_assigned_to", table_name="lead_documents")
    op.drop_table("lead_documents")
