"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

import sqlalchemy as sa

from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "project_repos",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("project_id", sa.String(36), nullable=False, index=True),
        sa.Column("organization", sa.String(255), nullable=False),
        sa.Column("repo", sa.String(255), nullable=False),
        sa.Column("branch", sa.String(255), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("is_prime", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("project_id", "organization", "repo"),
    )
    op.create_table(
        "repo_files",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "repo_id",
            sa.String(36),
            sa.ForeignKey("project_repos.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("path", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("last_commit_sha", sa.String(40), nullable=True),
        sa.Column("is_binary", sa.Boolean(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("repo_id", "path"),
    )
    op.create_table(
        "repo_staging",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "repo_id",
            sa.String(36),
            sa.ForeignKey("project_repos.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("operation_type", sa.String(16), nullable=False),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("old_content", sa.Text(), nullable=True),
        sa.Column("new_content", sa.Text(), nullable=True),
        sa.Column("old_path", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("repo_id", "file_path"),
    )
    op.create_table(
        "repo_commits",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "repo_id",
            sa.String(36),
            sa.ForeignKey("project_repos.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("branch", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("commit_sha", sa.String(40), nullable=True),
        sa.Column("files_metadata", sa.JSON(), nullable=False),
        sa.Column("committed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "repo_credentials",
        sa.Column(
            "repo_id",
            sa.String(36),
            sa.ForeignKey("project_repos.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("token", sa.Text(), nullable=False),
    )
    op.create_table(
        "project_tokens",
        sa.Column("token", sa.String(255), primary_key=True),
        sa.Column("project_id", sa.String(36), nullable=False, index=True),
        sa.Column("role", sa.String(16), nullable=False),
    )


def downgrade() -> None:
    for table in (
        "project_tokens",
        "repo_credentials",
        "repo_commits",
        "repo_staging",
        "repo_files",
        "project_repos",
    ):
        op.drop_table(table)
