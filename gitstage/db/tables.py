"""ORM tables backing the durable stores."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ProjectRepo(Base):
    __tablename__ = "project_repos"
    __table_args__ = (UniqueConstraint("project_id", "organization", "repo"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(String(36), index=True)
    organization: Mapped[str] = mapped_column(String(255))
    repo: Mapped[str] = mapped_column(String(255))
    branch: Mapped[str] = mapped_column(String(255), default="main")
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    is_prime: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class RepoFile(Base):
    __tablename__ = "repo_files"
    __table_args__ = (UniqueConstraint("repo_id", "path"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    repo_id: Mapped[str] = mapped_column(
        ForeignKey("project_repos.id", ondelete="CASCADE"), index=True
    )
    path: Mapped[str] = mapped_column(Text)
    content: Mapped[str] = mapped_column(Text, default="")
    last_commit_sha: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    is_binary: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class RepoStaging(Base):
    __tablename__ = "repo_staging"
    __table_args__ = (UniqueConstraint("repo_id", "file_path"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    repo_id: Mapped[str] = mapped_column(
        ForeignKey("project_repos.id", ondelete="CASCADE"), index=True
    )
    operation_type: Mapped[str] = mapped_column(String(16))
    file_path: Mapped[str] = mapped_column(Text)
    old_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    old_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class RepoCommit(Base):
    __tablename__ = "repo_commits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    repo_id: Mapped[str] = mapped_column(
        ForeignKey("project_repos.id", ondelete="CASCADE"), index=True
    )
    branch: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)
    commit_sha: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    files_metadata: Mapped[list] = mapped_column(JSON, default=list)
    committed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )


class RepoCredential(Base):
    __tablename__ = "repo_credentials"

    repo_id: Mapped[str] = mapped_column(
        ForeignKey("project_repos.id", ondelete="CASCADE"), primary_key=True
    )
    token: Mapped[str] = mapped_column(Text)


class ProjectToken(Base):
    __tablename__ = "project_tokens"

    token: Mapped[str] = mapped_column(String(255), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(36), index=True)
    role: Mapped[str] = mapped_column(String(16))
