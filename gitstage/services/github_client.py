"""Async client for the GitHub Git Data REST API."""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..errors import (
    AccessDeniedError,
    NotFoundError,
    RemoteConflictError,
    TransientNetworkError,
)
from ..schemas import GitTreeEntry, TreeEntryType

logger = logging.getLogger(__name__)


class GitHubClient:
    """Builds and reads Git objects on a hosted repository without a working copy."""

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        user_agent: str = "gitstage-sync",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"token {token}",
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": user_agent,
            },
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        conflict_statuses: Sequence[int] = (),
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, json=json, params=params)
        except httpx.TransportError as e:
            logger.error("%s %s failed: %s", method, url, e)
            raise TransientNetworkError(f"{method} {url} failed", detail=str(e)) from e

        if response.is_success:
            return response.json() if response.content else {}

        message = _error_message(response)
        logger.error("%s %s returned %d: %s", method, url, response.status_code, message)
        if response.status_code in conflict_statuses:
            raise RemoteConflictError(
                "Remote branch has moved; pull and retry", detail=message
            )
        if response.status_code in (401, 403):
            raise AccessDeniedError("GitHub rejected the credential", detail=message)
        if response.status_code == 404:
            raise NotFoundError(f"{url} not found", detail=message)
        raise TransientNetworkError(
            f"{method} {url} returned {response.status_code}", detail=message
        )

    # --- Repository level ---

    async def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        return await self._request("GET", f"/repos/{owner}/{repo}")

    async def get_branch(self, owner: str, repo: str, branch: str) -> Dict[str, Any]:
        return await self._request("GET", f"/repos/{owner}/{repo}/branches/{branch}")

    async def create_org_repository(
        self,
        organization: str,
        name: str,
        description: str = "",
        private: bool = True,
        auto_init: bool = True,
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/orgs/{organization}/repos",
            json={
                "name": name,
                "description": description,
                "private": private,
                "auto_init": auto_init,
            },
        )

    async def generate_from_template(
        self,
        template_owner: str,
        template_repo: str,
        owner: str,
        name: str,
        description: str = "",
        private: bool = True,
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/repos/{template_owner}/{template_repo}/generate",
            json={
                "owner": owner,
                "name": name,
                "description": description,
                "private": private,
            },
        )

    # --- Git data ---

    async def get_branch_head(self, owner: str, repo: str, branch: str) -> str:
        data = await self._request("GET", f"/repos/{owner}/{repo}/git/refs/heads/{branch}")
        return data["object"]["sha"]

    async def get_commit(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        return await self._request("GET", f"/repos/{owner}/{repo}/git/commits/{sha}")

    async def get_tree(self, owner: str, repo: str, sha: str) -> List[GitTreeEntry]:
        data = await self._request(
            "GET", f"/repos/{owner}/{repo}/git/trees/{sha}", params={"recursive": 1}
        )
        if data.get("truncated"):
            logger.warning("Tree %s of %s/%s was truncated by the remote", sha, owner, repo)
        return [
            GitTreeEntry(
                path=item["path"],
                mode=item.get("mode", "100644"),
                type=TreeEntryType(item.get("type", "blob")),
                sha=item.get("sha"),
                size=item.get("size"),
            )
            for item in data.get("tree", [])
        ]

    async def get_blob(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        return await self._request("GET", f"/repos/{owner}/{repo}/git/blobs/{sha}")

    async def create_blob(
        self, owner: str, repo: str, content: str, encoding: str = "utf-8"
    ) -> str:
        data = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/blobs",
            json={"content": content, "encoding": encoding},
        )
        return data["sha"]

    async def create_tree(
        self,
        owner: str,
        repo: str,
        entries: List[GitTreeEntry],
        base_tree: Optional[str] = None,
    ) -> str:
        payload: Dict[str, Any] = {"tree": [entry.to_payload() for entry in entries]}
        if base_tree:
            payload["base_tree"] = base_tree
        data = await self._request("POST", f"/repos/{owner}/{repo}/git/trees", json=payload)
        return data["sha"]

    async def create_commit(
        self, owner: str, repo: str, message: str, tree: str, parents: List[str]
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/commits",
            json={"message": message, "tree": tree, "parents": parents},
        )

    async def update_branch(
        self, owner: str, repo: str, branch: str, sha: str, force: bool = False
    ) -> None:
        # A non-fast-forward update is answered with 422
        await self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/git/refs/heads/{branch}",
            json={"sha": sha, "force": force},
            conflict_statuses=(409, 422),
        )


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict):
        return data.get("message", response.text)
    return response.text
