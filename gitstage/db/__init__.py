"""Database engine, sessions and ORM tables."""

from .database import build_engine, get_engine, get_session_factory
from .tables import (
    Base,
    ProjectRepo,
    ProjectToken,
    RepoCommit,
    RepoCredential,
    RepoFile,
    RepoStaging,
)

__all__ = [
    "Base",
    "ProjectRepo",
    "ProjectToken",
    "RepoCommit",
    "RepoCredential",
    "RepoFile",
    "RepoStaging",
    "build_engine",
    "get_engine",
    "get_session_factory",
]
