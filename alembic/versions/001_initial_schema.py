"""initial schema: sessions, messages, departments, document chunks, settings

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- chat_sessions ---
    op.create_table(
        "chat_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.String(255), nullable=False, unique=True),
        sa.Column("platform", sa.String(16), nullable=False, server_default="web"),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("current_mode", sa.String(16), nullable=True),
        sa.Column("current_department", sa.Text(), nullable=True),
        sa.Column("controlled_by", sa.String(16), nullable=True),
        sa.Column("last_options", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("last_message_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_chat_sessions_session_id", "chat_sessions", ["session_id"], unique=True)

    # --- messages ---
    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "session_id",
            sa.String(255),
            sa.ForeignKey("chat_sessions.session_id"),
            nullable=False,
        ),
        sa.Column("sender", sa.String(16), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("sender IN ('user', 'bot', 'system')", name="ck_messages_sender"),
    )
    op.create_index("ix_messages_session_id", "messages", ["session_id"])

    # --- departments ---
    departments = op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("icon", sa.String(16), nullable=False, server_default=""),
        sa.Column("type", sa.String(16), nullable=False, server_default="ai"),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("prompt", sa.Text(), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("type IN ('ai', 'human', 'hybrid')", name="ck_departments_type"),
    )

    # --- document_chunks ---
    op.create_table(
        "document_chunks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("filename", sa.String(512), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("embedding", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_document_chunks_filename", "document_chunks", ["filename"])

    # --- app_settings ---
    op.create_table(
        "app_settings",
        sa.Column("key", sa.String(128), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False, server_default=""),
    )

    op.bulk_insert(
        departments,
        [
            {"name": "Vendas", "icon": "🛒", "type": "ai", "display_order": 1},
            {"name": "Suporte Técnico", "icon": "🔧", "type": "ai", "display_order": 2},
            {"name": "Financeiro", "icon": "💰", "type": "ai", "display_order": 3},
            {"name": "Projetos Customizados", "icon": "⚙️", "type": "human", "display_order": 4},
        ],
    )


def downgrade() -> None:
    op.drop_table("app_settings")
    op.drop_index("ix_document_chunks_filename", table_name="document_chunks")
    op.drop_table("document_chunks")
    op.drop_table("departments")
    op.drop_index("ix_messages_session_id", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_chat_sessions_session_id", table_name="chat_sessions")
    op.drop_table("chat_sessions")
