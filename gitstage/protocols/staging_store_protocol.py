"""Staging store protocol interface."""

from typing import List, Optional, Protocol, runtime_checkable

from ..schemas import LocalCommit, OperationType, StagedChange


@runtime_checkable
class StagingStoreProtocol(Protocol):
    """Protocol for the durable store of pending per-path file operations."""

    def get_staged_changes(self, repo_id: str) -> List[StagedChange]:
        """Return every active staged change of a repository."""
        ...

    def stage_file_change(
        self,
        repo_id: str,
        operation_type: OperationType,
        file_path: str,
        old_content: Optional[str],
        new_content: Optional[str],
        old_path: Optional[str] = None,
    ) -> StagedChange:
        """Record a staged change, replacing any prior entry for the path."""
        ...

    def unstage_file(self, repo_id: str, file_path: str) -> bool:
        """Remove the staged change of a path. Returns True if one existed."""
        ...

    def commit_staged(
        self, repo_id: str, message: str, commit_sha: Optional[str] = None
    ) -> LocalCommit:
        """Apply all staged changes to the committed mirror and clear them."""
        ...

    def discard_staged(
        self, repo_id: str, file_paths: Optional[List[str]] = None
    ) -> int:
        """Drop staged changes without applying them."""
        ...
