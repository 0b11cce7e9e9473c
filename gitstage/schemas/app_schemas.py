"""Request and response bodies of the HTTP API."""

from typing import List, Optional

from pydantic import BaseModel

from .staging import OperationType


class SessionRequest(BaseModel):
    project_id: str
    share_token: Optional[str] = None


class PushRequest(SessionRequest):
    commit_message: Optional[str] = None
    file_paths: Optional[List[str]] = None


class PullRequest(SessionRequest):
    commit_sha: Optional[str] = None  # Pull a specific commit (rollback)


class StageRequest(SessionRequest):
    file_path: str
    operation_type: OperationType
    old_content: Optional[str] = None
    new_content: Optional[str] = None
    old_path: Optional[str] = None


class CommitStagedRequest(SessionRequest):
    commit_message: str


class DiscardStagedRequest(SessionRequest):
    file_paths: Optional[List[str]] = None


class CreateRepoRequest(SessionRequest):
    repo_name: str
    description: Optional[str] = None
    is_private: bool = True


class TemplateRepoRequest(SessionRequest):
    repo_name: str
    template_org: str
    template_repo: str


class LinkRepoRequest(SessionRequest):
    organization: str
    repo: str
    branch: str
    token: Optional[str] = None
