"""Coordinates synchronization between the committed-file mirror and the remote repository."""

import asyncio
import base64
import binascii
import logging
from typing import (
    AsyncContextManager,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
)

from ..errors import NotFoundError, TransientNetworkError, ValidationError
from ..protocols import AuthorizerProtocol, FileMirrorProtocol, GitRemoteProtocol
from ..schemas import (
    CommittedFile,
    GitTreeEntry,
    PullResult,
    PushResult,
    RemoteRepoRef,
    Role,
    SessionContext,
    TreeEntryType,
)
from .authorization import require_role
from .credentials import CredentialResolver
from .repo_registry import RepoRegistry

logger = logging.getLogger(__name__)

RemoteFactory = Callable[[str], AsyncContextManager[GitRemoteProtocol]]

DEFAULT_MAX_BATCH_BYTES = 25 * 1024 * 1024

# Stored base64-encoded in the mirror instead of decoded to text
BINARY_EXTENSIONS = frozenset(
    {
        ".png", ".jpg", ".jpeg", ".gif", ".ico", ".webp", ".bmp",
        ".pdf", ".zip", ".tar", ".gz", ".rar", ".7z",
        ".woff", ".woff2", ".ttf", ".eot", ".otf",
        ".mp3", ".mp4", ".wav", ".avi", ".mov", ".webm",
        ".exe", ".dll", ".so", ".dylib",
        ".pyc", ".class", ".o", ".obj",
        ".lock", ".lockb",
    }
)


def is_binary_path(path: str) -> bool:
    dot = path.rfind(".")
    return dot != -1 and path[dot:].lower() in BINARY_EXTENSIONS


def decode_blob(path: str, blob: Dict) -> Tuple[str, bool]:
    """Return (content, is_binary) for a blob fetched from the remote."""
    content = blob.get("content") or ""
    if blob.get("encoding") != "base64":
        return content, False

    raw = content.replace("\n", "")
    if is_binary_path(path):
        return raw, True
    try:
        return base64.b64decode(raw).decode("utf-8"), False
    except (binascii.Error, UnicodeDecodeError):
        logger.info("Treating %s as binary due to decode error", path)
        return raw, True


def create_size_batches(
    entries: Sequence[GitTreeEntry], max_batch_bytes: int = DEFAULT_MAX_BATCH_BYTES
) -> List[List[GitTreeEntry]]:
    """
    Group tree entries into batches of at most ``max_batch_bytes``.

    Entries are packed smallest first. An entry at or above the limit always
    gets a batch of its own.
    """
    batches: List[List[GitTreeEntry]] = []
    current: List[GitTreeEntry] = []
    current_size = 0

    for entry in sorted(entries, key=lambda e: e.size or 0):
        size = entry.size or 0
        if size >= max_batch_bytes:
            if current:
                batches.append(current)
                current, current_size = [], 0
            batches.append([entry])
            continue
        if current and current_size + size > max_batch_bytes:
            batches.append(current)
            current, current_size = [], 0
        current.append(entry)
        current_size += size

    if current:
        batches.append(current)
    return batches


def build_tree_entries(
    local_files: Sequence[CommittedFile],
    blob_shas: Sequence[str],
    remote_entries: Iterable[GitTreeEntry],
    scope: Optional[Iterable[str]] = None,
) -> Tuple[List[GitTreeEntry], List[str]]:
    """
    Build the complete entry list of a tree submitted without a base tree.

    Every local file gets an entry with its new blob sha. Remote files missing
    locally get a null-sha deletion entry. When ``scope`` limits the push to
    some paths, remote files outside it are carried forward unchanged and only
    remote files inside it can be deleted. Submodule entries are always kept.

    Returns the entries in submission order and the deleted paths.
    """
    remote_entries = list(remote_entries)
    remote_modes = {e.path: e.mode for e in remote_entries}
    entries = [
        GitTreeEntry(path=f.path, mode=remote_modes.get(f.path, "100644"), sha=sha)
        for f, sha in zip(local_files, blob_shas)
    ]
    local_paths = {f.path for f in local_files}
    scope_paths = set(scope) if scope is not None else None

    deleted: List[str] = []
    for remote in remote_entries:
        if remote.path in local_paths or remote.type == TreeEntryType.TREE:
            continue
        if remote.type == TreeEntryType.BLOB and (
            scope_paths is None or remote.path in scope_paths
        ):
            deleted.append(remote.path)
            entries.append(
                GitTreeEntry(path=remote.path, mode=remote.mode, type=remote.type, sha=None)
            )
        else:
            entries.append(
                GitTreeEntry(
                    path=remote.path, mode=remote.mode, type=remote.type, sha=remote.sha
                )
            )
    return entries, deleted


class SyncCoordinator:
    """Pushes the committed-file mirror to the remote and pulls remote state back."""

    def __init__(
        self,
        registry: RepoRegistry,
        file_mirror: FileMirrorProtocol,
        authorizer: AuthorizerProtocol,
        credentials: CredentialResolver,
        remote_factory: RemoteFactory,
        max_batch_bytes: int = DEFAULT_MAX_BATCH_BYTES,
    ):
        self.registry = registry
        self.file_mirror = file_mirror
        self.authorizer = authorizer
        self.credentials = credentials
        self.remote_factory = remote_factory
        self.max_batch_bytes = max_batch_bytes

    async def _resolve_repo(self, ctx: SessionContext, repo_id: str) -> RemoteRepoRef:
        await asyncio.to_thread(require_role, self.authorizer, ctx, Role.EDITOR)
        repo = await asyncio.to_thread(self.registry.get_repo, repo_id)
        if repo.project_id != ctx.project_id:
            raise NotFoundError(f"Repository {repo_id} not found")
        return repo

    # --- Push ---

    async def push(
        self,
        ctx: SessionContext,
        repo_id: str,
        commit_message: Optional[str] = None,
        file_paths: Optional[List[str]] = None,
    ) -> PushResult:
        """
        Commit the mirrored file set to the repository's branch.

        A new tree is built from the full entry list (every local file plus a
        deletion marker for each remote file that no longer exists locally),
        committed on top of the current head and published with a non-forcing
        ref update. RemoteConflictError means the branch moved meanwhile.
        """
        repo = await self._resolve_repo(ctx, repo_id)
        files = await asyncio.to_thread(self.file_mirror.list_files, repo.id, file_paths)
        if not files:
            raise ValidationError("No files to push")

        token = self.credentials.resolve(repo)
        logger.info("Pushing %d files to %s#%s", len(files), repo.full_name, repo.branch)
        async with self.remote_factory(token) as remote:
            result = await self._push_files(remote, repo, files, commit_message, file_paths)

        await asyncio.to_thread(
            self.file_mirror.set_commit_sha,
            repo.id,
            [f.path for f in files],
            result.commit_sha,
        )
        logger.info("Successfully pushed to %s: %s", repo.full_name, result.commit_sha)
        return result

    async def _push_files(
        self,
        remote: GitRemoteProtocol,
        repo: RemoteRepoRef,
        files: List[CommittedFile],
        commit_message: Optional[str],
        scope: Optional[List[str]],
    ) -> PushResult:
        owner, name = repo.organization, repo.repo_name

        head_sha = await remote.get_branch_head(owner, name, repo.branch)
        head_commit = await remote.get_commit(owner, name, head_sha)
        remote_entries = await remote.get_tree(owner, name, head_commit["tree"]["sha"])

        # One blob per file, changed or not, so the tree is built the same way every time
        blob_shas = await asyncio.gather(
            *(
                remote.create_blob(
                    owner, name, f.content, "base64" if f.is_binary else "utf-8"
                )
                for f in files
            )
        )

        entries, deleted = build_tree_entries(files, blob_shas, remote_entries, scope)
        if deleted:
            logger.info("Deleting %d files from %s", len(deleted), repo.full_name)

        tree_sha = await remote.create_tree(owner, name, entries)
        message = commit_message or f"Update {len(files)} file(s) via gitstage"
        commit = await remote.create_commit(owner, name, message, tree_sha, [head_sha])
        await remote.update_branch(owner, name, repo.branch, commit["sha"], force=False)

        return PushResult(
            commit_sha=commit["sha"],
            files_count=len(files),
            commit_url=commit.get("html_url"),
            deleted_paths=deleted,
        )

    # --- Pull ---

    async def pull(
        self, ctx: SessionContext, repo_id: str, commit_sha: Optional[str] = None
    ) -> PullResult:
        """
        Overwrite the mirror with the files of the branch head, or of
        ``commit_sha`` when given. Staged changes are left untouched.
        """
        repo = await self._resolve_repo(ctx, repo_id)
        token = self.credentials.resolve(repo)
        owner, name = repo.organization, repo.repo_name

        async with self.remote_factory(token) as remote:
            target_sha = commit_sha or await remote.get_branch_head(
                owner, name, repo.branch
            )
            logger.info("Pulling from %s at %s", repo.full_name, target_sha)
            commit = await remote.get_commit(owner, name, target_sha)
            tree = await remote.get_tree(owner, name, commit["tree"]["sha"])
            blobs = [entry for entry in tree if entry.type == TreeEntryType.BLOB]

            batches = create_size_batches(blobs, self.max_batch_bytes)
            logger.info("Found %d files to pull in %d batches", len(blobs), len(batches))

            fetched = 0
            updated = 0
            for index, batch in enumerate(batches):
                contents = await asyncio.gather(
                    *(self._fetch_file(remote, repo, entry, target_sha) for entry in batch)
                )
                valid = [f for f in contents if f is not None]
                fetched += len(valid)
                if valid:
                    updated += await asyncio.to_thread(
                        self.file_mirror.upsert_files, repo.id, valid
                    )
                    logger.debug(
                        "Batch %d/%d written (%d files)", index + 1, len(batches), len(valid)
                    )

        logger.info("Successfully pulled %d files, updated %d", fetched, updated)
        return PullResult(commit_sha=target_sha, files_count=fetched, files_updated=updated)

    async def _fetch_file(
        self,
        remote: GitRemoteProtocol,
        repo: RemoteRepoRef,
        entry: GitTreeEntry,
        commit_sha: str,
    ) -> Optional[dict]:
        try:
            blob = await remote.get_blob(repo.organization, repo.repo_name, entry.sha)
        except (NotFoundError, TransientNetworkError) as e:
            logger.error("Failed to get blob for %s: %s", entry.path, e)
            return None

        content, is_binary = decode_blob(entry.path, blob)
        return {
            "path": entry.path,
            "content": content,
            "commit_sha": commit_sha,
            "is_binary": is_binary,
        }
