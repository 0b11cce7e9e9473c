from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .git import PullResult


class Role(str, Enum):
    NONE = "none"
    VIEWER = "viewer"
    EDITOR = "editor"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]


_ROLE_RANK = {Role.NONE: 0, Role.VIEWER: 1, Role.EDITOR: 2, Role.OWNER: 3}


class RemoteRepoRef(BaseModel):
    """A remote repository linked to a project."""

    id: str
    project_id: str
    organization: str
    repo_name: str
    branch: str = "main"
    is_default: bool = False
    is_prime: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.organization}/{self.repo_name}"


class SessionContext(BaseModel):
    """Caller identity passed explicitly into every service call."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    share_token: Optional[str] = None


class LinkResult(BaseModel):
    repo: RemoteRepoRef
    html_url: Optional[str] = None
    visibility: Optional[str] = None
    pull: Optional[PullResult] = None
