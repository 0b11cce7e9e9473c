"""Services for the application."""

from .authorization import TokenAuthorizer, require_role
from .credentials import CredentialResolver, registry_token_origin
from .file_buffer import FileBufferManager
from .file_mirror import FileMirror
from .github_client import GitHubClient
from .repo_linker import RepoLinker, slugify_repo_name, unique_repo_name
from .repo_registry import RepoRegistry
from .staging_store import StagingStore
from .sync_coordinator import SyncCoordinator
from .task_registry import SaveTaskRegistry

__all__ = [
    "CredentialResolver",
    "FileBufferManager",
    "FileMirror",
    "GitHubClient",
    "RepoLinker",
    "RepoRegistry",
    "SaveTaskRegistry",
    "StagingStore",
    "SyncCoordinator",
    "TokenAuthorizer",
    "registry_token_origin",
    "require_role",
    "slugify_repo_name",
    "unique_repo_name",
]
