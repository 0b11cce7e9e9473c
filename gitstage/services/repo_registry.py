"""Project to remote repository links and repo-scoped credentials."""

import logging
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import sessionmaker

from ..db import ProjectRepo, RepoCommit, RepoCredential, RepoFile, RepoStaging
from ..errors import NotFoundError, PrimeRepositoryError
from ..schemas import RemoteRepoRef

logger = logging.getLogger(__name__)


def _to_ref(row: ProjectRepo) -> RemoteRepoRef:
    return RemoteRepoRef(
        id=row.id,
        project_id=row.project_id,
        organization=row.organization,
        repo_name=row.repo,
        branch=row.branch,
        is_default=row.is_default,
        is_prime=row.is_prime,
    )


class RepoRegistry:
    """Stores which remote repositories a project is linked to."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_repo(self, repo_id: str) -> RemoteRepoRef:
        with self.session_factory() as session:
            row = session.get(ProjectRepo, repo_id)
            if row is None:
                raise NotFoundError(f"Repository {repo_id} not found")
            return _to_ref(row)

    def list_project_repos(self, project_id: str) -> List[RemoteRepoRef]:
        with self.session_factory() as session:
            rows = session.scalars(
                select(ProjectRepo)
                .where(ProjectRepo.project_id == project_id)
                .order_by(ProjectRepo.is_prime.desc(), ProjectRepo.created_at)
            ).all()
            return [_to_ref(row) for row in rows]

    def register_repo(
        self,
        project_id: str,
        organization: str,
        repo_name: str,
        branch: str,
        is_default: bool,
        is_prime: Optional[bool] = None,
    ) -> RemoteRepoRef:
        """
        Link a remote repository to a project.

        The first repository of a project is always prime. Passing
        ``is_prime=True`` moves the prime flag to the new repository.
        """
        with self.session_factory.begin() as session:
            existing = session.scalar(
                select(func.count())
                .select_from(ProjectRepo)
                .where(ProjectRepo.project_id == project_id)
            )
            prime = existing == 0 or bool(is_prime)
            if prime and existing:
                session.execute(
                    update(ProjectRepo)
                    .where(ProjectRepo.project_id == project_id)
                    .values(is_prime=False)
                )
            row = ProjectRepo(
                project_id=project_id,
                organization=organization,
                repo=repo_name,
                branch=branch,
                is_default=is_default,
                is_prime=prime,
            )
            session.add(row)
            session.flush()
            logger.info(
                "Linked %s/%s#%s to project %s (prime=%s)",
                organization,
                repo_name,
                branch,
                project_id,
                prime,
            )
            return _to_ref(row)

    def set_prime(self, repo_id: str) -> RemoteRepoRef:
        with self.session_factory.begin() as session:
            row = session.get(ProjectRepo, repo_id)
            if row is None:
                raise NotFoundError(f"Repository {repo_id} not found")
            session.execute(
                update(ProjectRepo)
                .where(ProjectRepo.project_id == row.project_id)
                .values(is_prime=False)
            )
            row.is_prime = True
            session.flush()
            return _to_ref(row)

    def unlink_repo(self, repo_id: str) -> None:
        with self.session_factory.begin() as session:
            row = session.get(ProjectRepo, repo_id)
            if row is None:
                raise NotFoundError(f"Repository {repo_id} not found")
            if row.is_prime:
                raise PrimeRepositoryError(
                    f"{row.organization}/{row.repo} is the prime repository and cannot be unlinked"
                )
            for table in (RepoStaging, RepoFile, RepoCommit, RepoCredential):
                session.execute(delete(table).where(table.repo_id == repo_id))
            session.delete(row)

    def store_credential(self, repo_id: str, token: str) -> None:
        with self.session_factory.begin() as session:
            row = session.get(RepoCredential, repo_id)
            if row is None:
                session.add(RepoCredential(repo_id=repo_id, token=token))
            else:
                row.token = token

    def get_credential(self, repo_id: str) -> Optional[str]:
        with self.session_factory() as session:
            row = session.get(RepoCredential, repo_id)
            return row.token if row else None
