import base64
import hashlib
import json
import re
from typing import Callable, Dict, List, Optional, Tuple

import httpx
import pytest
from dotenv import load_dotenv
from sqlalchemy.orm import sessionmaker

from gitstage.db import Base, build_engine
from gitstage.schemas import Role, SessionContext
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

# Load environment variables from .env file
load_dotenv()

PROJECT_ID = "project-1"
OTHER_PROJECT_ID = "project-2"
SYSTEM_TOKEN = "system-token"
API_URL = "https://api.github.test"


class FakeGitHub:
    """In-memory GitHub Git Data API served through httpx.MockTransport."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.trees: Dict[str, Dict[str, Tuple[str, str, str]]] = {}
        self.commits: Dict[str, dict] = {}
        self.repos: Dict[str, dict] = {}
        self.requests: List[Tuple[str, str, Optional[dict]]] = []
        self.submitted_trees: List[dict] = []
        self.failures: Dict[Tuple[str, str], int] = {}
        self.hooks: Dict[str, Callable[[], None]] = {}

    # --- Object database ---

    def add_blob(self, data: bytes) -> str:
        sha = hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()
        self.blobs[sha] = data
        return sha

    def add_tree(self, entries: Dict[str, Tuple[str, str, str]]) -> str:
        sha = hashlib.sha1(json.dumps(sorted(entries.items())).encode()).hexdigest()
        self.trees[sha] = dict(entries)
        return sha

    def add_commit(self, tree_sha: str, parents: List[str], message: str) -> str:
        payload = json.dumps([tree_sha, parents, message, len(self.commits)])
        sha = hashlib.sha1(payload.encode()).hexdigest()
        self.commits[sha] = {
            "sha": sha,
            "message": message,
            "tree": {"sha": tree_sha},
            "parents": [{"sha": p} for p in parents],
        }
        return sha

    def _tree_from_files(self, files: Dict[str, str]) -> str:
        return self.add_tree(
            {
                path: ("100644", "blob", self.add_blob(content.encode("utf-8")))
                for path, content in files.items()
            }
        )

    # --- Repository helpers used by tests ---

    def create_repo(
        self,
        owner: str,
        name: str,
        files: Optional[Dict[str, str]] = None,
        branch: str = "main",
        private: bool = True,
        is_template: bool = False,
    ) -> str:
        tree_sha = self._tree_from_files(files or {})
        head = self.add_commit(tree_sha, [], "Initial commit")
        self.repos[f"{owner}/{name}"] = {
            "refs": {branch: head},
            "private": private,
            "default_branch": branch,
            "is_template": is_template,
        }
        return head

    def commit_files(
        self, owner: str, name: str, files: Dict[str, str], branch: str = "main"
    ) -> str:
        """Advance a branch as if another client had pushed."""
        repo = self.repos[f"{owner}/{name}"]
        parent = repo["refs"][branch]
        head = self.add_commit(self._tree_from_files(files), [parent], "External push")
        repo["refs"][branch] = head
        return head

    def head(self, owner: str, name: str, branch: str = "main") -> str:
        return self.repos[f"{owner}/{name}"]["refs"][branch]

    def tree_at(self, owner: str, name: str, branch: str = "main") -> Dict[str, Tuple]:
        commit = self.commits[self.head(owner, name, branch)]
        return self.trees[commit["tree"]["sha"]]

    def files_at(self, owner: str, name: str, branch: str = "main") -> Dict[str, str]:
        return {
            path: self.blobs[sha].decode("utf-8")
            for path, (_, kind, sha) in self.tree_at(owner, name, branch).items()
            if kind == "blob"
        }

    def calls(self, method: str, fragment: str) -> List[Optional[dict]]:
        return [body for m, p, body in self.requests if m == method and fragment in p]

    # --- HTTP surface ---

    def _meta(self, full_name: str) -> dict:
        repo = self.repos[full_name]
        return {
            "full_name": full_name,
            "name": full_name.split("/")[1],
            "html_url": f"https://github.test/{full_name}",
            "private": repo["private"],
            "default_branch": repo["default_branch"],
        }

    def _is_ancestor(self, ancestor: str, sha: str) -> bool:
        pending = [sha]
        while pending:
            current = pending.pop()
            if current == ancestor:
                return True
            pending.extend(p["sha"] for p in self.commits.get(current, {}).get("parents", []))
        return False

    def handle(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.requests.append((method, path, body))

        for (fail_method, fragment), status in self.failures.items():
            if method == fail_method and fragment in path:
                return httpx.Response(status, json={"message": "injected failure"})

        not_found = httpx.Response(404, json={"message": "Not Found"})

        m = re.fullmatch(r"/orgs/([^/]+)/repos", path)
        if m and method == "POST":
            full_name = f"{m.group(1)}/{body['name']}"
            if full_name in self.repos:
                return httpx.Response(422, json={"message": "name already exists"})
            files = {"README.md": f"# {body['name']}\n"} if body.get("auto_init") else {}
            self.create_repo(m.group(1), body["name"], files, private=body.get("private", True))
            return httpx.Response(201, json=self._meta(full_name))

        m = re.fullmatch(r"/repos/([^/]+)/([^/]+)/generate", path)
        if m and method == "POST":
            template = f"{m.group(1)}/{m.group(2)}"
            if template not in self.repos or not self.repos[template]["is_template"]:
                return not_found
            full_name = f"{body['owner']}/{body['name']}"
            head = self.add_commit(
                self.commits[self.head(m.group(1), m.group(2))]["tree"]["sha"],
                [],
                "Initial commit",
            )
            self.repos[full_name] = {
                "refs": {"main": head},
                "private": body.get("private", True),
                "default_branch": "main",
                "is_template": False,
            }
            return httpx.Response(201, json=self._meta(full_name))

        m = re.fullmatch(r"/repos/([^/]+)/([^/]+)(/.*)?", path)
        if not m or f"{m.group(1)}/{m.group(2)}" not in self.repos:
            return not_found
        full_name = f"{m.group(1)}/{m.group(2)}"
        repo = self.repos[full_name]
        rest = m.group(3) or ""

        if rest == "" and method == "GET":
            return httpx.Response(200, json=self._meta(full_name))

        m = re.fullmatch(r"/branches/(.+)", rest)
        if m and method == "GET":
            if m.group(1) not in repo["refs"]:
                return not_found
            return httpx.Response(
                200, json={"name": m.group(1), "commit": {"sha": repo["refs"][m.group(1)]}}
            )

        m = re.fullmatch(r"/git/refs/heads/(.+)", rest)
        if m:
            branch = m.group(1)
            if branch not in repo["refs"]:
                return not_found
            if method == "GET":
                return httpx.Response(
                    200,
                    json={
                        "ref": f"refs/heads/{branch}",
                        "object": {"sha": repo["refs"][branch], "type": "commit"},
                    },
                )
            if method == "PATCH":
                hook = self.hooks.get("before_update_ref")
                if hook:
                    hook()
                if not body.get("force") and not self._is_ancestor(
                    repo["refs"][branch], body["sha"]
                ):
                    return httpx.Response(422, json={"message": "Update is not a fast forward"})
                repo["refs"][branch] = body["sha"]
                return httpx.Response(
                    200, json={"ref": f"refs/heads/{branch}", "object": {"sha": body["sha"]}}
                )

        m = re.fullmatch(r"/git/commits(?:/([0-9a-f]+))?", rest)
        if m and method == "GET":
            commit = self.commits.get(m.group(1))
            return httpx.Response(200, json=commit) if commit else not_found
        if m and method == "POST":
            sha = self.add_commit(body["tree"], body["parents"], body["message"])
            return httpx.Response(
                201,
                json={**self.commits[sha], "html_url": f"https://github.test/{full_name}/commit/{sha}"},
            )

        m = re.fullmatch(r"/git/trees(?:/([0-9a-f]+))?", rest)
        if m and method == "GET":
            tree = self.trees.get(m.group(1))
            if tree is None:
                return not_found
            listing = []
            directories = sorted(
                {p.rsplit("/", 1)[0] for p in tree if "/" in p}
            )
            for directory in directories:
                listing.append({"path": directory, "mode": "040000", "type": "tree", "sha": "0" * 40})
            for entry_path, (mode, kind, sha) in sorted(tree.items()):
                size = len(self.blobs[sha]) if kind == "blob" else None
                listing.append(
                    {"path": entry_path, "mode": mode, "type": kind, "sha": sha, "size": size}
                )
            return httpx.Response(200, json={"sha": m.group(1), "tree": listing, "truncated": False})
        if m and method == "POST":
            self.submitted_trees.append(body)
            entries = {}
            if body.get("base_tree"):
                entries.update(self.trees[body["base_tree"]])
            for item in body["tree"]:
                if item["sha"] is None:
                    entries.pop(item["path"], None)
                    continue
                if item["type"] == "blob" and item["sha"] not in self.blobs:
                    return httpx.Response(422, json={"message": "tree.sha is not a valid blob"})
                entries[item["path"]] = (item["mode"], item["type"], item["sha"])
            return httpx.Response(201, json={"sha": self.add_tree(entries)})

        m = re.fullmatch(r"/git/blobs(?:/([0-9a-f]+))?", rest)
        if m and method == "GET":
            data = self.blobs.get(m.group(1))
            if data is None:
                return not_found
            encoded = base64.b64encode(data).decode("ascii")
            wrapped = "\n".join(encoded[i : i + 60] for i in range(0, len(encoded), 60))
            return httpx.Response(
                200,
                json={"sha": m.group(1), "size": len(data), "content": wrapped, "encoding": "base64"},
            )
        if m and method == "POST":
            if body["encoding"] == "base64":
                data = base64.b64decode(body["content"])
            else:
                data = body["content"].encode("utf-8")
            return httpx.Response(201, json={"sha": self.add_blob(data)})

        return not_found


@pytest.fixture
def session_factory(tmp_path) -> sessionmaker:
    engine = build_engine(f"sqlite:///{tmp_path / 'gitstage-test.db'}")
    Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def staging_store(session_factory) -> StagingStore:
    return StagingStore(session_factory)


@pytest.fixture
def file_mirror(session_factory) -> FileMirror:
    return FileMirror(session_factory)


@pytest.fixture
def registry(session_factory) -> RepoRegistry:
    return RepoRegistry(session_factory)


@pytest.fixture
def authorizer(session_factory) -> TokenAuthorizer:
    authorizer = TokenAuthorizer(session_factory)
    authorizer.grant(PROJECT_ID, "owner-token", Role.OWNER)
    authorizer.grant(PROJECT_ID, "editor-token", Role.EDITOR)
    authorizer.grant(PROJECT_ID, "viewer-token", Role.VIEWER)
    authorizer.grant(OTHER_PROJECT_ID, "other-editor-token", Role.EDITOR)
    return authorizer


@pytest.fixture
def editor_ctx() -> SessionContext:
    return SessionContext(project_id=PROJECT_ID, share_token="editor-token")


@pytest.fixture
def viewer_ctx() -> SessionContext:
    return SessionContext(project_id=PROJECT_ID, share_token="viewer-token")


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def remote_factory(fake_github):
    def _factory(token: str) -> GitHubClient:
        return GitHubClient(
            token, base_url=API_URL, transport=httpx.MockTransport(fake_github.handle)
        )

    return _factory


@pytest.fixture
def credentials(registry) -> CredentialResolver:
    return CredentialResolver(registry_token_origin(registry, SYSTEM_TOKEN))


@pytest.fixture
def coordinator(registry, file_mirror, authorizer, credentials, remote_factory):
    return SyncCoordinator(
        registry=registry,
        file_mirror=file_mirror,
        authorizer=authorizer,
        credentials=credentials,
        remote_factory=remote_factory,
    )


@pytest.fixture
def linker(registry, staging_store, authorizer, credentials, remote_factory, coordinator):
    return RepoLinker(
        registry=registry,
        staging_store=staging_store,
        authorizer=authorizer,
        credentials=credentials,
        remote_factory=remote_factory,
        sync=coordinator,
        organization="acme",
        system_token=SYSTEM_TOKEN,
        template_ready_delay=0,
    )


@pytest.fixture
def repo(registry, fake_github):
    """A default repo of PROJECT_ID whose remote holds a.txt, b.txt and c.txt."""
    fake_github.create_repo(
        "acme", "widgets", {"a.txt": "alpha", "b.txt": "bravo", "c.txt": "charlie"}
    )
    return registry.register_repo(PROJECT_ID, "acme", "widgets", "main", True)
