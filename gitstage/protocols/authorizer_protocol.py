"""Authorization collaborator protocol interface."""

from typing import Optional, Protocol, runtime_checkable

from ..schemas import Role


@runtime_checkable
class AuthorizerProtocol(Protocol):
    def authorize(self, project_id: str, credential: Optional[str] = None) -> Role:
        """Resolve the caller's role on a project."""
        ...
