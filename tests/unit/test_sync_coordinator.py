"""Unit tests for SyncCoordinator and its tree and batch helpers."""

import base64
from unittest.mock import Mock

import pytest

from gitstage.errors import (
    AccessDeniedError,
    NotFoundError,
    RemoteConflictError,
    ValidationError,
)
from gitstage.schemas import (
    CommittedFile,
    GitTreeEntry,
    OperationType,
    SessionContext,
    TreeEntryType,
)
from gitstage.services import SyncCoordinator
from gitstage.services.sync_coordinator import (
    build_tree_entries,
    create_size_batches,
    decode_blob,
    is_binary_path,
)


def mirror_files(file_mirror, repo_id, files):
    for path, content in files.items():
        file_mirror.upsert_file(repo_id, path, content, None)


class TestBuildTreeEntries:
    """Full tree construction from local files and the remote listing."""

    def setup_method(self):
        self.remote = [
            GitTreeEntry(path="a.txt", sha="1" * 40, mode="100755"),
            GitTreeEntry(path="b.txt", sha="2" * 40),
            GitTreeEntry(path="docs", type=TreeEntryType.TREE, mode="040000", sha="3" * 40),
            GitTreeEntry(path="docs/c.txt", sha="4" * 40),
        ]

    def _local(self, *paths):
        return [CommittedFile(id=p, repo_id="r", path=p, content=p) for p in paths]

    def test_missing_remote_files_get_null_sha(self):
        entries, deleted = build_tree_entries(
            self._local("a.txt", "new.txt"), ["a" * 40, "b" * 40], self.remote
        )

        by_path = {e.path: e for e in entries}
        assert deleted == ["b.txt", "docs/c.txt"]
        assert by_path["b.txt"].sha is None
        assert by_path["docs/c.txt"].sha is None
        assert by_path["new.txt"].sha == "b" * 40
        assert "docs" not in by_path

    def test_existing_mode_is_kept(self):
        entries, _ = build_tree_entries(self._local("a.txt"), ["a" * 40], self.remote)

        assert entries[0].mode == "100755"

    def test_scope_carries_forward_other_paths(self):
        entries, deleted = build_tree_entries(
            self._local("a.txt"), ["a" * 40], self.remote, scope=["a.txt", "b.txt"]
        )

        by_path = {e.path: e for e in entries}
        assert deleted == ["b.txt"]
        assert by_path["docs/c.txt"].sha == "4" * 40

    def test_submodules_are_never_deleted(self):
        remote = self.remote + [
            GitTreeEntry(path="vendor/lib", type=TreeEntryType.COMMIT, mode="160000", sha="5" * 40)
        ]

        entries, deleted = build_tree_entries(self._local("a.txt"), ["a" * 40], remote)

        submodule = next(e for e in entries if e.path == "vendor/lib")
        assert submodule.sha == "5" * 40
        assert "vendor/lib" not in deleted


class TestCreateSizeBatches:
    def _entry(self, path, size):
        return GitTreeEntry(path=path, sha="0" * 40, size=size)

    def test_small_files_share_a_batch(self):
        batches = create_size_batches(
            [self._entry("a", 10), self._entry("b", 20), self._entry("c", 30)], 100
        )

        assert [[e.path for e in batch] for batch in batches] == [["a", "b", "c"]]

    def test_limit_splits_batches_smallest_first(self):
        batches = create_size_batches(
            [self._entry("big", 60), self._entry("small", 10), self._entry("mid", 50)], 100
        )

        assert [[e.path for e in batch] for batch in batches] == [["small", "mid"], ["big"]]

    def test_oversized_file_gets_its_own_batch(self):
        batches = create_size_batches(
            [self._entry("a", 10), self._entry("huge", 500), self._entry("b", 20)], 100
        )

        assert [[e.path for e in batch] for batch in batches] == [["a", "b"], ["huge"]]

    def test_empty_input(self):
        assert create_size_batches([], 100) == []


class TestDecodeBlob:
    def _blob(self, data: bytes) -> dict:
        return {"content": base64.b64encode(data).decode() + "\n", "encoding": "base64"}

    def test_text_is_decoded(self):
        assert decode_blob("notes/readme.md", self._blob("héllo".encode())) == ("héllo", False)

    def test_binary_extension_stays_base64(self):
        content, is_binary = decode_blob("logo.PNG", self._blob(b"\x89PNG"))

        assert is_binary is True
        assert base64.b64decode(content) == b"\x89PNG"

    def test_invalid_utf8_falls_back_to_binary(self):
        content, is_binary = decode_blob("data.bin", self._blob(b"\xff\xfe\x00"))

        assert is_binary is True
        assert base64.b64decode(content) == b"\xff\xfe\x00"

    def test_binary_extensions(self):
        assert is_binary_path("assets/font.woff2")
        assert not is_binary_path("Makefile")
        assert not is_binary_path("src/app.py")


class TestPush:
    """Publishing the mirror to the remote branch."""

    @pytest.mark.asyncio
    async def test_push_replaces_remote_file_set(
        self, coordinator, file_mirror, fake_github, repo, editor_ctx
    ):
        old_head = fake_github.head("acme", "widgets")
        mirror_files(
            file_mirror, repo.id, {"a.txt": "alpha", "b.txt": "bravo 2", "d.txt": "delta"}
        )

        result = await coordinator.push(editor_ctx, repo.id, commit_message="Replace c with d")

        assert fake_github.files_at("acme", "widgets") == {
            "a.txt": "alpha",
            "b.txt": "bravo 2",
            "d.txt": "delta",
        }
        assert result.files_count == 3
        assert result.deleted_paths == ["c.txt"]
        assert fake_github.head("acme", "widgets") == result.commit_sha

        commit = fake_github.commits[result.commit_sha]
        assert commit["message"] == "Replace c with d"
        assert [p["sha"] for p in commit["parents"]] == [old_head]

        submitted = fake_github.submitted_trees[-1]
        assert "base_tree" not in submitted
        assert {"path": "c.txt", "mode": "100644", "type": "blob", "sha": None} in submitted["tree"]

    @pytest.mark.asyncio
    async def test_push_sends_a_blob_for_every_file(
        self, coordinator, file_mirror, fake_github, repo, editor_ctx
    ):
        mirror_files(file_mirror, repo.id, {"a.txt": "alpha", "b.txt": "bravo", "c.txt": "charlie"})

        result = await coordinator.push(editor_ctx, repo.id)

        assert len(fake_github.calls("POST", "/git/blobs")) == 3
        assert result.deleted_paths == []
        assert fake_github.commits[result.commit_sha]["message"] == "Update 3 file(s) via gitstage"

    @pytest.mark.asyncio
    async def test_push_records_commit_sha_in_mirror(
        self, coordinator, file_mirror, repo, editor_ctx
    ):
        mirror_files(file_mirror, repo.id, {"a.txt": "alpha"})

        result = await coordinator.push(editor_ctx, repo.id)

        assert file_mirror.get_file_by_path(repo.id, "a.txt").commit_sha == result.commit_sha

    @pytest.mark.asyncio
    async def test_empty_file_is_pushed(self, coordinator, file_mirror, fake_github, repo, editor_ctx):
        mirror_files(file_mirror, repo.id, {"a.txt": "alpha", ".gitkeep": ""})

        await coordinator.push(editor_ctx, repo.id)

        assert fake_github.files_at("acme", "widgets")[".gitkeep"] == ""

    @pytest.mark.asyncio
    async def test_binary_file_is_sent_base64(
        self, coordinator, file_mirror, fake_github, repo, editor_ctx
    ):
        encoded = base64.b64encode(b"\x89PNG\r\n").decode()
        file_mirror.upsert_file(repo.id, "logo.png", encoded, None, is_binary=True)

        await coordinator.push(editor_ctx, repo.id)

        assert {"content": encoded, "encoding": "base64"} in fake_github.calls("POST", "/git/blobs")
        _, _, sha = fake_github.tree_at("acme", "widgets")["logo.png"]
        assert fake_github.blobs[sha] == b"\x89PNG\r\n"

    @pytest.mark.asyncio
    async def test_scoped_push_keeps_other_remote_files(
        self, coordinator, file_mirror, fake_github, repo, editor_ctx
    ):
        mirror_files(file_mirror, repo.id, {"a.txt": "alpha 2", "d.txt": "delta"})

        result = await coordinator.push(editor_ctx, repo.id, file_paths=["a.txt"])

        assert result.files_count == 1
        assert result.deleted_paths == []
        assert fake_github.files_at("acme", "widgets") == {
            "a.txt": "alpha 2",
            "b.txt": "bravo",
            "c.txt": "charlie",
        }

    @pytest.mark.asyncio
    async def test_push_without_files_makes_no_remote_calls(
        self, coordinator, fake_github, repo, editor_ctx
    ):
        with pytest.raises(ValidationError):
            await coordinator.push(editor_ctx, repo.id)

        assert fake_github.requests == []

    @pytest.mark.asyncio
    async def test_moved_branch_is_a_conflict(
        self, coordinator, file_mirror, fake_github, repo, editor_ctx
    ):
        mirror_files(file_mirror, repo.id, {"a.txt": "mine"})
        fake_github.hooks["before_update_ref"] = lambda: fake_github.commit_files(
            "acme", "widgets", {"a.txt": "theirs"}
        )

        with pytest.raises(RemoteConflictError):
            await coordinator.push(editor_ctx, repo.id)

        assert fake_github.files_at("acme", "widgets") == {"a.txt": "theirs"}
        assert file_mirror.get_file_by_path(repo.id, "a.txt").commit_sha is None

    @pytest.mark.asyncio
    async def test_viewer_cannot_push(self, coordinator, file_mirror, fake_github, repo, viewer_ctx):
        mirror_files(file_mirror, repo.id, {"a.txt": "alpha"})

        with pytest.raises(AccessDeniedError):
            await coordinator.push(viewer_ctx, repo.id)

        assert fake_github.requests == []

    @pytest.mark.asyncio
    async def test_repo_of_another_project_is_not_found(
        self, coordinator, registry, fake_github
    ):
        fake_github.create_repo("acme", "elsewhere", {"x.txt": "x"})
        other = registry.register_repo("project-2", "acme", "elsewhere", "main", True)
        ctx = SessionContext(project_id="project-1", share_token="editor-token")

        with pytest.raises(NotFoundError):
            await coordinator.push(ctx, other.id)


class TestPull:
    """Overwriting the mirror with remote content."""

    @pytest.mark.asyncio
    async def test_pull_mirrors_branch_head(self, coordinator, file_mirror, fake_github, repo, editor_ctx):
        result = await coordinator.pull(editor_ctx, repo.id)

        files = {f.path: f for f in file_mirror.list_files(repo.id)}
        assert {path: f.content for path, f in files.items()} == {
            "a.txt": "alpha",
            "b.txt": "bravo",
            "c.txt": "charlie",
        }
        assert result.commit_sha == fake_github.head("acme", "widgets")
        assert result.files_count == 3
        assert result.files_updated == 3
        assert all(f.commit_sha == result.commit_sha for f in files.values())

    @pytest.mark.asyncio
    async def test_pull_nested_and_binary_files(
        self, coordinator, file_mirror, fake_github, registry, editor_ctx
    ):
        fake_github.create_repo(
            "acme", "site", {"docs/guide/intro.md": "# Intro\n", "img/logo.png": "not really png"}
        )
        repo = registry.register_repo("project-1", "acme", "site", "main", True)

        await coordinator.pull(editor_ctx, repo.id)

        intro = file_mirror.get_file_by_path(repo.id, "docs/guide/intro.md")
        logo = file_mirror.get_file_by_path(repo.id, "img/logo.png")
        assert intro.content == "# Intro\n"
        assert intro.is_binary is False
        assert logo.is_binary is True
        assert base64.b64decode(logo.content) == b"not really png"

    @pytest.mark.asyncio
    async def test_pull_at_commit_rolls_back(
        self, coordinator, file_mirror, fake_github, repo, editor_ctx
    ):
        old_head = fake_github.head("acme", "widgets")
        fake_github.commit_files("acme", "widgets", {"a.txt": "alpha 2"})

        result = await coordinator.pull(editor_ctx, repo.id, commit_sha=old_head)

        assert result.commit_sha == old_head
        assert file_mirror.get_file_by_path(repo.id, "a.txt").content == "alpha"
        assert fake_github.calls("GET", "/git/refs/heads/") == []

    @pytest.mark.asyncio
    async def test_pull_leaves_staged_changes(
        self, coordinator, staging_store, repo, editor_ctx
    ):
        staging_store.stage_file_change(repo.id, OperationType.EDIT, "a.txt", "alpha", "local")

        await coordinator.pull(editor_ctx, repo.id)

        assert [c.new_content for c in staging_store.get_staged_changes(repo.id)] == ["local"]

    @pytest.mark.asyncio
    async def test_failed_blob_is_skipped(self, coordinator, file_mirror, fake_github, repo, editor_ctx):
        _, _, sha = fake_github.tree_at("acme", "widgets")["b.txt"]
        fake_github.failures[("GET", f"/git/blobs/{sha}")] = 500

        result = await coordinator.pull(editor_ctx, repo.id)

        assert result.files_count == 2
        assert file_mirror.get_file_by_path(repo.id, "b.txt") is None

    @pytest.mark.asyncio
    async def test_pull_writes_in_size_batches(
        self, registry, file_mirror, authorizer, credentials, remote_factory, repo, editor_ctx
    ):
        mirror = Mock(wraps=file_mirror)
        coordinator = SyncCoordinator(
            registry=registry,
            file_mirror=mirror,
            authorizer=authorizer,
            credentials=credentials,
            remote_factory=remote_factory,
            max_batch_bytes=6,
        )

        result = await coordinator.pull(editor_ctx, repo.id)

        assert mirror.upsert_files.call_count == 3
        assert result.files_updated == 3

    @pytest.mark.asyncio
    async def test_linked_repo_without_token_is_denied(
        self, coordinator, registry, fake_github, editor_ctx
    ):
        fake_github.create_repo("someone", "private-repo", {"x.txt": "x"})
        repo = registry.register_repo("project-1", "someone", "private-repo", "main", False)

        with pytest.raises(AccessDeniedError):
            await coordinator.pull(editor_ctx, repo.id)
