"""GitHub token resolution with a cache in front of the origin lookup."""

import logging
import time
from typing import Callable, Dict, Optional, Tuple

from ..errors import AccessDeniedError
from ..schemas import RemoteRepoRef

logger = logging.getLogger(__name__)

TokenOrigin = Callable[[RemoteRepoRef], Optional[str]]


class CredentialResolver:
    """
    Resolves the GitHub token used for a repository.

    Lookups go to a TTL cache first and fall back to the injected origin.
    Tokens found at the origin are cached; missing tokens are not.
    """

    def __init__(
        self,
        origin: TokenOrigin,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.origin = origin
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._cache: Dict[str, Tuple[str, float]] = {}

    def resolve(self, repo: RemoteRepoRef) -> str:
        cached = self._cache.get(repo.id)
        if cached and cached[1] > self.clock():
            return cached[0]

        token = self.origin(repo)
        if not token:
            if repo.is_default:
                raise AccessDeniedError("GitHub token not configured")
            raise AccessDeniedError(f"A token is required for {repo.full_name}")

        self._cache[repo.id] = (token, self.clock() + self.ttl_seconds)
        return token

    def invalidate(self, repo_id: str) -> None:
        self._cache.pop(repo_id, None)


def registry_token_origin(registry, system_token: str) -> TokenOrigin:
    """Default repos use the system token; linked repos use their stored one."""

    def _lookup(repo: RemoteRepoRef) -> Optional[str]:
        if repo.is_default:
            return system_token or None
        return registry.get_credential(repo.id)

    return _lookup
