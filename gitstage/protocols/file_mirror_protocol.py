"""Committed-file mirror protocol interface."""

from typing import Iterable, List, Optional, Protocol, runtime_checkable

from ..schemas import CommittedFile


@runtime_checkable
class FileMirrorProtocol(Protocol):
    """Protocol for the local copy of a repository's last-known remote state."""

    def get_file_content(self, file_id: str) -> Optional[CommittedFile]:
        """Get a committed file by id."""
        ...

    def get_file_by_path(self, repo_id: str, path: str) -> Optional[CommittedFile]:
        """Get a committed file by repository path."""
        ...

    def list_files(
        self, repo_id: str, paths: Optional[Iterable[str]] = None
    ) -> List[CommittedFile]:
        """List committed files, optionally restricted to some paths."""
        ...

    def upsert_file(
        self,
        repo_id: str,
        path: str,
        content: str,
        commit_sha: Optional[str],
        is_binary: bool = False,
    ) -> CommittedFile:
        """Insert or overwrite the mirror entry for a path."""
        ...

    def upsert_files(self, repo_id: str, files: List[dict]) -> int:
        """Write a batch of pulled files. Returns the number written."""
        ...

    def set_commit_sha(self, repo_id: str, paths: Iterable[str], commit_sha: str) -> int:
        """Record the remote commit a set of paths was last pushed in."""
        ...
