from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import sessionmaker

from gitstage.config.settings import Settings, get_settings
from gitstage.db import get_session_factory
from gitstage.services import (
    CredentialResolver,
    FileMirror,
    GitHubClient,
    RepoLinker,
    RepoRegistry,
    StagingStore,
    SyncCoordinator,
    TokenAuthorizer,
    registry_token_origin,
)
from gitstage.services.sync_coordinator import RemoteFactory


def get_staging_store(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> StagingStore:
    return StagingStore(session_factory)


def get_file_mirror(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> FileMirror:
    return FileMirror(session_factory)


def get_repo_registry(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> RepoRegistry:
    return RepoRegistry(session_factory)


def get_authorizer(
    session_factory: sessionmaker = Depends(get_session_factory),
) -> TokenAuthorizer:
    return TokenAuthorizer(session_factory)


# One resolver per process; its token cache is shared by all requests
@lru_cache
def get_credential_resolver() -> CredentialResolver:
    settings = get_settings()
    registry = RepoRegistry(get_session_factory())
    return CredentialResolver(
        registry_token_origin(registry, settings.GITHUB_PAT),
        ttl_seconds=settings.CREDENTIAL_CACHE_TTL,
    )


def get_remote_factory(settings: Settings = Depends(get_settings)) -> RemoteFactory:
    def _factory(token: str) -> GitHubClient:
        return GitHubClient(
            token,
            base_url=settings.GITHUB_API_URL,
            timeout=settings.HTTP_TIMEOUT,
            user_agent=settings.USER_AGENT,
        )

    return _factory


# Service層は、先行するStore層のDI（Getter）に依存する
def get_sync_coordinator(
    settings: Settings = Depends(get_settings),
    registry: RepoRegistry = Depends(get_repo_registry),
    file_mirror: FileMirror = Depends(get_file_mirror),
    authorizer: TokenAuthorizer = Depends(get_authorizer),
    credentials: CredentialResolver = Depends(get_credential_resolver),
    remote_factory: RemoteFactory = Depends(get_remote_factory),
) -> SyncCoordinator:
    return SyncCoordinator(
        registry=registry,
        file_mirror=file_mirror,
        authorizer=authorizer,
        credentials=credentials,
        remote_factory=remote_factory,
        max_batch_bytes=settings.PULL_MAX_BATCH_BYTES,
    )


def get_repo_linker(
    settings: Settings = Depends(get_settings),
    registry: RepoRegistry = Depends(get_repo_registry),
    staging_store: StagingStore = Depends(get_staging_store),
    authorizer: TokenAuthorizer = Depends(get_authorizer),
    credentials: CredentialResolver = Depends(get_credential_resolver),
    remote_factory: RemoteFactory = Depends(get_remote_factory),
    sync: SyncCoordinator = Depends(get_sync_coordinator),
) -> RepoLinker:
    return RepoLinker(
        registry=registry,
        staging_store=staging_store,
        authorizer=authorizer,
        credentials=credentials,
        remote_factory=remote_factory,
        sync=sync,
        organization=settings.GITHUB_ORGANIZATION,
        system_token=settings.GITHUB_PAT,
        default_branch=settings.DEFAULT_BRANCH,
        template_ready_delay=settings.TEMPLATE_READY_DELAY,
    )
