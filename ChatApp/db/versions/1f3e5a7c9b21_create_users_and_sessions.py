"""Create users (chat sessions) and sessions (exchanges) tables

Revision ID: 1f3e5a7c9b21
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "1f3e5a7c9b21"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_session_id", "users", ["session_id"], unique=True)
    op.create_index("ix_users_user_id", "users", ["user_id"], unique=False)
    # Session listing is always per user, newest first
    op.create_index("ix_users_user_id_created_at_desc", "users", ["user_id", sa.text("created_at DESC")])

    op.create_table(
        "sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.String(length=64), sa.ForeignKey("users.session_id"), nullable=False),
        sa.Column("query", sa.Text(), nullable=False),
        sa.Column("datatext", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_sessions_session_id", "sessions", ["session_id"], unique=False)
    op.create_index("ix_sessions_session_id_created_at", "sessions", ["session_id", "created_at"])


def downgrade():
    op.drop_index("ix_sessions_session_id_created_at", table_name="sessions")
    op.drop_index("ix_sessions_session_id", table_name="sessions")
    op.drop_table("sessions")
    op.drop_index("ix_users_user_id_created_at_desc", table_name="users")
    op.drop_index("ix_users_user_id", table_name="users")
    op.drop_index("ix_users_session_id", table_name="users")
    op.drop_table("users")
