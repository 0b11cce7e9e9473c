import asyncio
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException

from gitstage.dependencies import (
    get_authorizer,
    get_repo_linker,
    get_repo_registry,
    get_staging_store,
    get_sync_coordinator,
)
from gitstage.errors import GitStageError, NotFoundError
from gitstage.schemas import (
    CommitStagedRequest,
    CreateRepoRequest,
    DiscardStagedRequest,
    LinkRepoRequest,
    LinkResult,
    LocalCommit,
    PullRequest,
    PullResult,
    PushRequest,
    PushResult,
    RemoteRepoRef,
    Role,
    SessionContext,
    SessionRequest,
    StagedChange,
    StageRequest,
    TemplateRepoRequest,
)
from gitstage.services import (
    RepoLinker,
    RepoRegistry,
    StagingStore,
    SyncCoordinator,
    TokenAuthorizer,
    require_role,
)

router = APIRouter(tags=["gitstage"])


def _context(body: SessionRequest) -> SessionContext:
    return SessionContext(project_id=body.project_id, share_token=body.share_token)


def _http_error(e: GitStageError) -> HTTPException:
    detail = e.message if not e.detail else f"{e.message}: {e.detail}"
    return HTTPException(status_code=e.status_code, detail=detail)


def _authorized_repo(
    registry: RepoRegistry,
    authorizer: TokenAuthorizer,
    ctx: SessionContext,
    repo_id: str,
    minimum: Role,
) -> RemoteRepoRef:
    require_role(authorizer, ctx, minimum)
    repo = registry.get_repo(repo_id)
    if repo.project_id != ctx.project_id:
        raise NotFoundError(f"Repository {repo_id} not found")
    return repo


# --- Sync ---


@router.post("/repos/{repo_id}/push", response_model=PushResult)
async def push_repository(
    repo_id: str,
    request: PushRequest,
    coordinator: SyncCoordinator = Depends(get_sync_coordinator),
):
    """Push the committed files of a repository to its remote branch."""
    try:
        return await coordinator.push(
            _context(request),
            repo_id,
            commit_message=request.commit_message,
            file_paths=request.file_paths,
        )
    except GitStageError as e:
        raise _http_error(e)


@router.post("/repos/{repo_id}/pull", response_model=PullResult)
async def pull_repository(
    repo_id: str,
    request: PullRequest,
    coordinator: SyncCoordinator = Depends(get_sync_coordinator),
):
    """Overwrite the committed files of a repository with the remote state."""
    try:
        return await coordinator.pull(
            _context(request), repo_id, commit_sha=request.commit_sha
        )
    except GitStageError as e:
        raise _http_error(e)


# --- Staging ---


@router.get("/repos/{repo_id}/staged", response_model=List[StagedChange])
async def list_staged_changes(
    repo_id: str,
    project_id: str,
    share_token: Optional[str] = None,
    registry: RepoRegistry = Depends(get_repo_registry),
    authorizer: TokenAuthorizer = Depends(get_authorizer),
    staging_store: StagingStore = Depends(get_staging_store),
):
    ctx = SessionContext(project_id=project_id, share_token=share_token)
    try:
        await asyncio.to_thread(
            _authorized_repo, registry, authorizer, ctx, repo_id, Role.VIEWER
        )
        return await asyncio.to_thread(staging_store.get_staged_changes, repo_id)
    except GitStageError as e:
        raise _http_error(e)


@router.post("/repos/{repo_id}/staged", response_model=StagedChange)
async def stage_file(
    repo_id: str,
    request: StageRequest,
    registry: RepoRegistry = Depends(get_repo_registry),
    authorizer: TokenAuthorizer = Depends(get_authorizer),
    staging_store: StagingStore = Depends(get_staging_store),
):
    try:
        await asyncio.to_thread(
            _authorized_repo, registry, authorizer, _context(request), repo_id, Role.EDITOR
        )
        return await asyncio.to_thread(
            staging_store.stage_file_change,
            repo_id,
            request.operation_type,
            request.file_path,
            request.old_content,
            request.new_content,
            request.old_path,
        )
    except GitStageError as e:
        raise _http_error(e)


@router.delete("/repos/{repo_id}/staged/{file_path:path}", response_model=Dict[str, Any])
async def unstage_file(
    repo_id: str,
    file_path: str,
    project_id: str,
    share_token: Optional[str] = None,
    registry: RepoRegistry = Depends(get_repo_registry),
    authorizer: TokenAuthorizer = Depends(get_authorizer),
    staging_store: StagingStore = Depends(get_staging_store),
):
    ctx = SessionContext(project_id=project_id, share_token=share_token)
    try:
        await asyncio.to_thread(
            _authorized_repo, registry, authorizer, ctx, repo_id, Role.EDITOR
        )
        removed = await asyncio.to_thread(staging_store.unstage_file, repo_id, file_path)
        return {"file_path": file_path, "unstaged": removed}
    except GitStageError as e:
        raise _http_error(e)


@router.post("/repos/{repo_id}/commit", response_model=LocalCommit)
async def commit_staged(
    repo_id: str,
    request: CommitStagedRequest,
    registry: RepoRegistry = Depends(get_repo_registry),
    authorizer: TokenAuthorizer = Depends(get_authorizer),
    staging_store: StagingStore = Depends(get_staging_store),
):
    """Apply every staged change to the committed files."""
    try:
        await asyncio.to_thread(
            _authorized_repo, registry, authorizer, _context(request), repo_id, Role.EDITOR
        )
        return await asyncio.to_thread(
            staging_store.commit_staged, repo_id, request.commit_message
        )
    except GitStageError as e:
        raise _http_error(e)


@router.post("/repos/{repo_id}/discard", response_model=Dict[str, Any])
async def discard_staged(
    repo_id: str,
    request: DiscardStagedRequest,
    registry: RepoRegistry = Depends(get_repo_registry),
    authorizer: TokenAuthorizer = Depends(get_authorizer),
    staging_store: StagingStore = Depends(get_staging_store),
):
    try:
        await asyncio.to_thread(
            _authorized_repo, registry, authorizer, _context(request), repo_id, Role.EDITOR
        )
        discarded = await asyncio.to_thread(
            staging_store.discard_staged, repo_id, request.file_paths
        )
        return {"discarded": discarded}
    except GitStageError as e:
        raise _http_error(e)


# --- Repository links ---


@router.get("/projects/{project_id}/repos", response_model=List[RemoteRepoRef])
async def list_project_repos(
    project_id: str,
    share_token: Optional[str] = None,
    linker: RepoLinker = Depends(get_repo_linker),
):
    ctx = SessionContext(project_id=project_id, share_token=share_token)
    try:
        return await linker.list_repos(ctx)
    except GitStageError as e:
        raise _http_error(e)


@router.post("/repos/create", response_model=LinkResult)
async def create_empty_repo(
    request: CreateRepoRequest, linker: RepoLinker = Depends(get_repo_linker)
):
    """Create a new remote repository for a project."""
    try:
        return await linker.create_empty(
            _context(request),
            request.repo_name,
            description=request.description,
            private=request.is_private,
        )
    except GitStageError as e:
        raise _http_error(e)


@router.post("/repos/from-template", response_model=LinkResult)
async def create_repo_from_template(
    request: TemplateRepoRequest, linker: RepoLinker = Depends(get_repo_linker)
):
    try:
        return await linker.create_from_template(
            _context(request),
            request.repo_name,
            request.template_org,
            request.template_repo,
        )
    except GitStageError as e:
        raise _http_error(e)


@router.post("/repos/link", response_model=LinkResult)
async def link_existing_repo(
    request: LinkRepoRequest, linker: RepoLinker = Depends(get_repo_linker)
):
    """Link a repository that already exists on GitHub."""
    try:
        return await linker.link_existing(
            _context(request),
            request.organization,
            request.repo,
            request.branch,
            token=request.token,
        )
    except GitStageError as e:
        raise _http_error(e)


@router.post("/repos/{repo_id}/prime", response_model=RemoteRepoRef)
async def set_prime_repo(
    repo_id: str,
    request: SessionRequest,
    linker: RepoLinker = Depends(get_repo_linker),
):
    try:
        return await linker.set_prime(_context(request), repo_id)
    except GitStageError as e:
        raise _http_error(e)


@router.delete("/repos/{repo_id}", response_model=Dict[str, Any])
async def unlink_repo(
    repo_id: str,
    project_id: str,
    share_token: Optional[str] = None,
    linker: RepoLinker = Depends(get_repo_linker),
):
    ctx = SessionContext(project_id=project_id, share_token=share_token)
    try:
        await linker.unlink(ctx, repo_id)
        return {"status": "unlinked", "repo_id": repo_id}
    except GitStageError as e:
        raise _http_error(e)
