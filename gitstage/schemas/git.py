from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class TreeEntryType(str, Enum):
    """Object types that appear in a Git tree listing."""

    BLOB = "blob"
    TREE = "tree"
    COMMIT = "commit"


class GitTreeEntry(BaseModel):
    """One path record of a tree submission. A null sha marks a deletion."""

    path: str
    mode: str = "100644"
    type: TreeEntryType = TreeEntryType.BLOB
    sha: Optional[str] = None
    size: Optional[int] = None

    def to_payload(self) -> dict:
        return {
            "path": self.path,
            "mode": self.mode,
            "type": self.type.value,
            "sha": self.sha,
        }


class PushResult(BaseModel):
    commit_sha: str
    files_count: int
    commit_url: Optional[str] = None
    deleted_paths: List[str] = []


class PullResult(BaseModel):
    commit_sha: str
    files_count: int
    files_updated: int
