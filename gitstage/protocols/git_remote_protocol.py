"""Remote Git host protocol interface."""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ..schemas import GitTreeEntry


@runtime_checkable
class GitRemoteProtocol(Protocol):
    """Protocol for the Git Data REST surface of a hosted repository."""

    async def get_branch_head(self, owner: str, repo: str, branch: str) -> str:
        """Resolve refs/heads/{branch} to a commit sha."""
        ...

    async def get_commit(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        """Fetch a commit object."""
        ...

    async def get_tree(self, owner: str, repo: str, sha: str) -> List[GitTreeEntry]:
        """Recursively list a tree."""
        ...

    async def get_blob(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        """Fetch a blob with its encoded content."""
        ...

    async def create_blob(
        self, owner: str, repo: str, content: str, encoding: str = "utf-8"
    ) -> str:
        """Create a blob and return its sha."""
        ...

    async def create_tree(
        self,
        owner: str,
        repo: str,
        entries: List[GitTreeEntry],
        base_tree: Optional[str] = None,
    ) -> str:
        """Create a tree from an ordered entry list and return its sha."""
        ...

    async def create_commit(
        self, owner: str, repo: str, message: str, tree: str, parents: List[str]
    ) -> Dict[str, Any]:
        """Create a commit object."""
        ...

    async def update_branch(
        self, owner: str, repo: str, branch: str, sha: str, force: bool = False
    ) -> None:
        """Move refs/heads/{branch} to sha."""
        ...
