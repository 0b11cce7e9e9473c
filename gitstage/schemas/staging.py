from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class OperationType(str, Enum):
    """Kinds of pending file mutation."""

    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"
    RENAME = "rename"


class StagedChange(BaseModel):
    """A pending, uncommitted file mutation for one repository path."""

    repo_id: str
    file_path: str
    operation_type: OperationType
    old_content: Optional[str] = None
    new_content: Optional[str] = None
    old_path: Optional[str] = None  # For renamed files
    created_at: Optional[datetime] = None


class CommittedFile(BaseModel):
    """Mirror of a file as of the last known remote commit."""

    id: str
    repo_id: str
    path: str
    content: str
    commit_sha: Optional[str] = None
    is_binary: bool = False


class LocalCommit(BaseModel):
    id: str
    repo_id: str
    branch: str
    message: str
    commit_sha: Optional[str] = None
    files_metadata: list = []
    committed_at: Optional[datetime] = None
