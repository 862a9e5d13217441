"""Create board, agent profile, agent run, API key, and activity tables.

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "1a2b3c4d5e6f"
down_revision = None
branch_labels = None
depends_on = None


def _index(table: str, column: str, *, unique: bool = False) -> None:
    op.create_index(op.f(f"ix_{table}_{column}"), table, [column], unique=unique)


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("is_bot", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        _index("users", "name")
        _index("users", "email")
        _index("users", "is_bot")

    if not inspector.has_table("projects"):
        op.create_table(
            "projects",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        _index("projects", "name")

    if not inspector.has_table("tasks"):
        op.create_table(
            "tasks",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("project_id", sa.Uuid(), nullable=True),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(), nullable=False, server_default="BACKLOG"),
            sa.Column("assignee_id", sa.Uuid(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.Column("started_at", sa.DateTime(), nullable=True),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
            sa.ForeignKeyConstraint(["assignee_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        _index("tasks", "project_id")
        _index("tasks", "status")
        _index("tasks", "assignee_id")
        _index("tasks", "created_at")

    if not inspector.has_table("comments"):
        op.create_table(
            "comments",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("task_id", sa.Uuid(), nullable=False),
            sa.Column("author_id", sa.Uuid(), nullable=False),
            sa.Column("parent_id", sa.Uuid(), nullable=True),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"]),
            sa.ForeignKeyConstraint(["author_id"], ["users.id"]),
            sa.ForeignKeyConstraint(["parent_id"], ["comments.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        _index("comments", "task_id")
        _index("comments", "author_id")
        _index("comments", "parent_id")
        _index("comments", "created_at")

    if not inspector.has_table("agent_profiles"):
        op.create_table(
            "agent_profiles",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("model", sa.String(), nullable=False),
            sa.Column("provider", sa.String(), nullable=False, server_default="ANTHROPIC"),
            sa.Column("system_prompt", sa.Text(), nullable=False),
            sa.Column("temperature", sa.Float(), nullable=False, server_default="0.7"),
            sa.Column("max_tokens", sa.Integer(), nullable=False, server_default="4096"),
            sa.Column("skills", sa.JSON(), nullable=False),
            sa.Column("tools", sa.JSON(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        _index("agent_profiles", "name", unique=True)
        _index("agent_profiles", "provider")
        _index("agent_profiles", "is_active")

    if not inspector.has_table("agent_runs"):
        op.create_table(
            "agent_runs",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("agent_id", sa.Uuid(), nullable=False),
            sa.Column("task_id", sa.Uuid(), nullable=False),
            sa.Column("status", sa.String(), nullable=False, server_default="QUEUED"),
            sa.Column("input", sa.Text(), nullable=False),
            sa.Column("output", sa.Text(), nullable=True),
            sa.Column("input_tokens", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("output_tokens", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_tokens", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("cost", sa.Float(), nullable=True),
            sa.Column("tool_iterations", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("started_at", sa.DateTime(), nullable=True),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["agent_id"], ["agent_profiles.id"]),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        _index("agent_runs", "agent_id")
        _index("agent_runs", "task_id")
        _index("agent_runs", "status")
        _index("agent_runs", "created_at")

    if not inspector.has_table("api_keys"):
        op.create_table(
            "api_keys",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("user_id", sa.Uuid(), nullable=False),
            sa.Column("provider", sa.String(), nullable=False),
            sa.Column("encrypted_key", sa.Text(), nullable=False),
            sa.Column("last4", sa.String(), nullable=True),
            sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
            sa.Column("last_checked_at", sa.DateTime(), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "provider", name="uq_api_keys_user_id_provider"),
        )
        _index("api_keys", "user_id")
        _index("api_keys", "provider")
        _index("api_keys", "status")

    if not inspector.has_table("activities"):
        op.create_table(
            "activities",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("type", sa.String(), nullable=False),
            sa.Column("message", sa.String(), nullable=False),
            sa.Column("task_id", sa.Uuid(), nullable=True),
            sa.Column("agent_id", sa.Uuid(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"]),
            sa.ForeignKeyConstraint(["agent_id"], ["agent_profiles.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        _index("activities", "type")
        _index("activities", "task_id")
        _index("activities", "agent_id")


def downgrade() -> None:
    for table in (
        "activities",
        "api_keys",
        "agent_runs",
        "agent_profiles",
        "comments",
        "tasks",
        "projects",
        "users",
    ):
        op.drop_table(table)
