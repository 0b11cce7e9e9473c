"""SQLAlchemy-backed store of pending per-path file operations."""

import logging
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from ..db import ProjectRepo, RepoCommit, RepoFile, RepoStaging
from ..errors import NotFoundError, ValidationError
from ..schemas import LocalCommit, OperationType, StagedChange
from .file_mirror import upsert_row

logger = logging.getLogger(__name__)


def _to_staged_change(row: RepoStaging) -> StagedChange:
    return StagedChange(
        repo_id=row.repo_id,
        file_path=row.file_path,
        operation_type=OperationType(row.operation_type),
        old_content=row.old_content,
        new_content=row.new_content,
        old_path=row.old_path,
        created_at=row.created_at,
    )


class StagingStore:
    """Durable key-value store of staged changes, one active row per path."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_staged_changes(self, repo_id: str) -> List[StagedChange]:
        with self.session_factory() as session:
            rows = session.scalars(
                select(RepoStaging)
                .where(RepoStaging.repo_id == repo_id)
                .order_by(RepoStaging.created_at, RepoStaging.file_path)
            ).all()
            return [_to_staged_change(row) for row in rows]

    def stage_file_change(
        self,
        repo_id: str,
        operation_type: OperationType,
        file_path: str,
        old_content: Optional[str],
        new_content: Optional[str],
        old_path: Optional[str] = None,
    ) -> StagedChange:
        operation_type = OperationType(operation_type)
        if operation_type == OperationType.RENAME and not old_path:
            raise ValidationError("Rename requires the previous path")

        with self.session_factory.begin() as session:
            session.execute(
                delete(RepoStaging).where(
                    RepoStaging.repo_id == repo_id,
                    RepoStaging.file_path == file_path,
                )
            )
            row = RepoStaging(
                repo_id=repo_id,
                operation_type=operation_type.value,
                file_path=file_path,
                old_content=old_content,
                new_content=new_content,
                old_path=old_path,
            )
            session.add(row)
            session.flush()
            logger.debug("Staged %s of %s in repo %s", operation_type.value, file_path, repo_id)
            return _to_staged_change(row)

    def unstage_file(self, repo_id: str, file_path: str) -> bool:
        with self.session_factory.begin() as session:
            result = session.execute(
                delete(RepoStaging).where(
                    RepoStaging.repo_id == repo_id,
                    RepoStaging.file_path == file_path,
                )
            )
            return result.rowcount > 0

    def discard_staged(
        self, repo_id: str, file_paths: Optional[List[str]] = None
    ) -> int:
        query = delete(RepoStaging).where(RepoStaging.repo_id == repo_id)
        if file_paths is not None:
            query = query.where(RepoStaging.file_path.in_(file_paths))
        with self.session_factory.begin() as session:
            return session.execute(query).rowcount

    def commit_staged(
        self, repo_id: str, message: str, commit_sha: Optional[str] = None
    ) -> LocalCommit:
        """
        Apply every staged change of a repository to the committed-file mirror.

        Adds and edits overwrite the mirror row, deletes remove it and renames
        move the row to the new path. The applied rows are recorded in a local
        commit and removed from staging, all in one transaction.
        """
        with self.session_factory.begin() as session:
            repo = session.get(ProjectRepo, repo_id)
            if repo is None:
                raise NotFoundError(f"Repository {repo_id} not found")

            staged = session.scalars(
                select(RepoStaging)
                .where(RepoStaging.repo_id == repo_id)
                .order_by(RepoStaging.created_at)
            ).all()
            if not staged:
                raise ValidationError("No staged changes to commit")

            files_metadata = []
            for change in staged:
                op = OperationType(change.operation_type)
                if op in (OperationType.ADD, OperationType.EDIT):
                    upsert_row(
                        session, repo_id, change.file_path, change.new_content or "", commit_sha
                    )
                elif op == OperationType.DELETE:
                    session.execute(
                        delete(RepoFile).where(
                            RepoFile.repo_id == repo_id,
                            RepoFile.path == change.file_path,
                        )
                    )
                elif op == OperationType.RENAME:
                    session.execute(
                        delete(RepoFile).where(
                            RepoFile.repo_id == repo_id,
                            RepoFile.path == change.old_path,
                        )
                    )
                    upsert_row(
                        session, repo_id, change.file_path, change.new_content or "", commit_sha
                    )
                files_metadata.append(
                    {
                        "path": change.file_path,
                        "operation": op.value,
                        "old_path": change.old_path,
                    }
                )
                session.delete(change)

            commit = RepoCommit(
                repo_id=repo_id,
                branch=repo.branch,
                message=message,
                commit_sha=commit_sha,
                files_metadata=files_metadata,
            )
            session.add(commit)
            session.flush()
            logger.info(
                "Committed %d staged change(s) locally for repo %s", len(staged), repo_id
            )
            return LocalCommit(
                id=commit.id,
                repo_id=repo_id,
                branch=commit.branch,
                message=message,
                commit_sha=commit_sha,
                files_metadata=files_metadata,
                committed_at=commit.committed_at,
            )
