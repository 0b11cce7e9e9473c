"""Creates or attaches remote repositories and links them to projects."""

import asyncio
import logging
import re
import uuid
from typing import AsyncContextManager, Awaitable, Callable, List, Optional

from ..errors import AccessDeniedError, GitStageError, NotFoundError, ValidationError
from ..protocols import AuthorizerProtocol, StagingStoreProtocol
from ..schemas import LinkResult, OperationType, RemoteRepoRef, Role, SessionContext
from .authorization import require_role
from .credentials import CredentialResolver
from .github_client import GitHubClient
from .repo_registry import RepoRegistry
from .sync_coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


def slugify_repo_name(name: str) -> str:
    slug = re.sub(r"[^a-z0-9-]+", "-", name.lower().strip())
    slug = re.sub(r"^-+|-+$", "", slug)
    return re.sub(r"-{2,}", "-", slug)


def unique_repo_name(name: str, suffix: Optional[str] = None) -> str:
    """Slugify ``name`` and append a short random suffix."""
    slug = slugify_repo_name(name)
    if not slug:
        raise ValidationError("Repository name must contain letters or digits")
    return f"{slug}-{suffix or uuid.uuid4().hex[:8]}"


class RepoLinker:
    """Bootstraps remote repositories for projects."""

    def __init__(
        self,
        registry: RepoRegistry,
        staging_store: StagingStoreProtocol,
        authorizer: AuthorizerProtocol,
        credentials: CredentialResolver,
        remote_factory: Callable[[str], AsyncContextManager[GitHubClient]],
        sync: SyncCoordinator,
        organization: str,
        system_token: str,
        default_branch: str = "main",
        template_ready_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.registry = registry
        self.staging_store = staging_store
        self.authorizer = authorizer
        self.credentials = credentials
        self.remote_factory = remote_factory
        self.sync = sync
        self.organization = organization
        self.system_token = system_token
        self.default_branch = default_branch
        self.template_ready_delay = template_ready_delay
        self.sleep = sleep

    def _require_system_token(self) -> str:
        if not self.system_token:
            raise AccessDeniedError("GitHub token not configured")
        return self.system_token

    async def _authorize(self, ctx: SessionContext, minimum: Role = Role.EDITOR) -> None:
        await asyncio.to_thread(require_role, self.authorizer, ctx, minimum)

    async def _project_repo(self, ctx: SessionContext, repo_id: str) -> RemoteRepoRef:
        repo = await asyncio.to_thread(self.registry.get_repo, repo_id)
        if repo.project_id != ctx.project_id:
            raise NotFoundError(f"Repository {repo_id} not found")
        return repo

    async def create_empty(
        self,
        ctx: SessionContext,
        name: str,
        description: Optional[str] = None,
        private: bool = True,
    ) -> LinkResult:
        """
        Create an auto-initialized repository in the organization and link it.

        The new repository is seeded with a README and a placeholder through the
        staging store, committed locally against the branch head.
        """
        await self._authorize(ctx)
        repo_name = unique_repo_name(name)
        token = self._require_system_token()

        async with self.remote_factory(token) as remote:
            data = await remote.create_org_repository(
                self.organization,
                repo_name,
                description=f"Repository for {name}",
                private=private,
                auto_init=True,
            )
            branch = data.get("default_branch") or self.default_branch
            head_sha = await remote.get_branch_head(self.organization, repo_name, branch)

        repo = await asyncio.to_thread(
            self.registry.register_repo,
            ctx.project_id,
            self.organization,
            repo_name,
            branch,
            True,
        )
        await self._seed_files(repo, name, description, head_sha)
        logger.info("Created empty repository: %s", repo.full_name)
        return LinkResult(
            repo=repo,
            html_url=data.get("html_url"),
            visibility="private" if data.get("private", private) else "public",
        )

    async def _seed_files(
        self,
        repo: RemoteRepoRef,
        name: str,
        description: Optional[str],
        head_sha: str,
    ) -> None:
        initial_files = [
            ("README.md", f"# {name}\n\n{description or 'Project repository'}\n"),
            (".gitkeep", ""),
        ]
        for path, content in initial_files:
            await asyncio.to_thread(
                self.staging_store.stage_file_change,
                repo.id,
                OperationType.ADD,
                path,
                "",
                content,
            )
        await asyncio.to_thread(
            self.staging_store.commit_staged,
            repo.id,
            "Initial project structure",
            head_sha,
        )

    async def create_from_template(
        self,
        ctx: SessionContext,
        name: str,
        template_org: str,
        template_repo: str,
        private: bool = True,
    ) -> LinkResult:
        """Instantiate a template repository, link it and pull its files."""
        await self._authorize(ctx)
        repo_name = unique_repo_name(name)
        token = self._require_system_token()

        async with self.remote_factory(token) as remote:
            try:
                data = await remote.generate_from_template(
                    template_org,
                    template_repo,
                    self.organization,
                    repo_name,
                    description=f"Repository for {name} (from {template_org}/{template_repo})",
                    private=private,
                )
            except NotFoundError as e:
                raise NotFoundError(
                    f"Template repository '{template_org}/{template_repo}' not found",
                    detail=e.detail,
                ) from e

        # The remote finishes copying template contents asynchronously
        await self.sleep(self.template_ready_delay)

        repo = await asyncio.to_thread(
            self.registry.register_repo,
            ctx.project_id,
            self.organization,
            repo_name,
            data.get("default_branch") or self.default_branch,
            True,
        )

        pull = None
        try:
            pull = await self.sync.pull(ctx, repo.id)
        except GitStageError as e:
            logger.error("Error pulling template files into %s: %s", repo.full_name, e)

        logger.info(
            "Created repository from template: %s from %s/%s",
            repo.full_name,
            template_org,
            template_repo,
        )
        return LinkResult(
            repo=repo,
            html_url=data.get("html_url"),
            visibility="private" if data.get("private", private) else "public",
            pull=pull,
        )

    async def link_existing(
        self,
        ctx: SessionContext,
        organization: str,
        repo: str,
        branch: str,
        token: Optional[str] = None,
    ) -> LinkResult:
        """
        Link a repository that already exists on the remote.

        Both the repository and the branch must be reachable with the given
        token (or the system token). Files are not pulled.
        """
        await self._authorize(ctx)
        test_token = token or self.system_token
        if not test_token:
            raise AccessDeniedError("GitHub token required for accessing repository")

        async with self.remote_factory(test_token) as remote:
            try:
                data = await remote.get_repository(organization, repo)
            except NotFoundError as e:
                raise NotFoundError("Repository not found or not accessible") from e
            try:
                await remote.get_branch(organization, repo, branch)
            except NotFoundError as e:
                raise NotFoundError(f"Branch '{branch}' not found in repository") from e

        ref = await asyncio.to_thread(
            self.registry.register_repo, ctx.project_id, organization, repo, branch, False
        )
        if token:
            await asyncio.to_thread(self.registry.store_credential, ref.id, token)
            self.credentials.invalidate(ref.id)

        logger.info("Linked existing repository: %s#%s", ref.full_name, branch)
        return LinkResult(repo=ref, html_url=data.get("html_url"))

    async def unlink(self, ctx: SessionContext, repo_id: str) -> None:
        await self._authorize(ctx)
        await self._project_repo(ctx, repo_id)
        await asyncio.to_thread(self.registry.unlink_repo, repo_id)
        self.credentials.invalidate(repo_id)

    async def set_prime(self, ctx: SessionContext, repo_id: str) -> RemoteRepoRef:
        await self._authorize(ctx)
        await self._project_repo(ctx, repo_id)
        return await asyncio.to_thread(self.registry.set_prime, repo_id)

    async def list_repos(self, ctx: SessionContext) -> List[RemoteRepoRef]:
        await self._authorize(ctx, Role.VIEWER)
        return await asyncio.to_thread(self.registry.list_project_repos, ctx.project_id)
