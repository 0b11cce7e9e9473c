"""SQLAlchemy-backed mirror of each repository's committed files."""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from ..db import RepoFile
from ..schemas import CommittedFile

logger = logging.getLogger(__name__)


def to_committed_file(row: RepoFile) -> CommittedFile:
    return CommittedFile(
        id=row.id,
        repo_id=row.repo_id,
        path=row.path,
        content=row.content,
        commit_sha=row.last_commit_sha,
        is_binary=row.is_binary,
    )


def upsert_row(
    session: Session,
    repo_id: str,
    path: str,
    content: str,
    commit_sha: Optional[str],
    is_binary: bool = False,
) -> RepoFile:
    """Insert or overwrite a mirror row inside an open session."""
    row = session.scalars(
        select(RepoFile).where(RepoFile.repo_id == repo_id, RepoFile.path == path)
    ).first()
    if row is None:
        row = RepoFile(repo_id=repo_id, path=path)
        session.add(row)
    row.content = content
    row.last_commit_sha = commit_sha
    row.is_binary = is_binary
    session.flush()
    return row


class FileMirror:
    """Durable local copy of the remote repository's last-known committed state."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_file_content(self, file_id: str) -> Optional[CommittedFile]:
        with self.session_factory() as session:
            row = session.get(RepoFile, file_id)
            return to_committed_file(row) if row else None

    def get_file_by_path(self, repo_id: str, path: str) -> Optional[CommittedFile]:
        with self.session_factory() as session:
            row = session.scalars(
                select(RepoFile).where(
                    RepoFile.repo_id == repo_id, RepoFile.path == path
                )
            ).first()
            return to_committed_file(row) if row else None

    def list_files(
        self, repo_id: str, paths: Optional[Iterable[str]] = None
    ) -> List[CommittedFile]:
        query = select(RepoFile).where(RepoFile.repo_id == repo_id)
        if paths is not None:
            query = query.where(RepoFile.path.in_(list(paths)))
        with self.session_factory() as session:
            rows = session.scalars(query.order_by(RepoFile.path)).all()
            return [to_committed_file(row) for row in rows]

    def upsert_file(
        self,
        repo_id: str,
        path: str,
        content: str,
        commit_sha: Optional[str],
        is_binary: bool = False,
    ) -> CommittedFile:
        with self.session_factory.begin() as session:
            row = upsert_row(session, repo_id, path, content, commit_sha, is_binary)
            return to_committed_file(row)

    def upsert_files(self, repo_id: str, files: List[dict]) -> int:
        """Write a batch of pulled files in one transaction."""
        with self.session_factory.begin() as session:
            for f in files:
                upsert_row(
                    session,
                    repo_id,
                    f["path"],
                    f["content"],
                    f.get("commit_sha"),
                    f.get("is_binary", False),
                )
        logger.debug("Upserted %d files into mirror of repo %s", len(files), repo_id)
        return len(files)

    def set_commit_sha(self, repo_id: str, paths: Iterable[str], commit_sha: str) -> int:
        with self.session_factory.begin() as session:
            result = session.execute(
                update(RepoFile)
                .where(RepoFile.repo_id == repo_id, RepoFile.path.in_(list(paths)))
                .values(last_commit_sha=commit_sha)
            )
            return result.rowcount
