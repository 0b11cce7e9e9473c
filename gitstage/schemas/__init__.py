"""Schemas for the application."""

from .app_schemas import (
    CommitStagedRequest,
    CreateRepoRequest,
    DiscardStagedRequest,
    LinkRepoRequest,
    PullRequest,
    PushRequest,
    SessionRequest,
    StageRequest,
    TemplateRepoRequest,
)
from .git import GitTreeEntry, PullResult, PushResult, TreeEntryType
from .repos import LinkResult, RemoteRepoRef, Role, SessionContext
from .staging import CommittedFile, LocalCommit, OperationType, StagedChange

__all__ = [
    "CommitStagedRequest",
    "CommittedFile",
    "CreateRepoRequest",
    "DiscardStagedRequest",
    "GitTreeEntry",
    "LinkRepoRequest",
    "LinkResult",
    "LocalCommit",
    "OperationType",
    "PullRequest",
    "PullResult",
    "PushRequest",
    "PushResult",
    "RemoteRepoRef",
    "Role",
    "SessionContext",
    "SessionRequest",
    "StageRequest",
    "StagedChange",
    "TemplateRepoRequest",
    "TreeEntryType",
]
