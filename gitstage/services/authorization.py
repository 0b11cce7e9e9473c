"""Share-token authorization for project-level operations."""

import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from ..db import ProjectToken
from ..errors import AccessDeniedError
from ..protocols import AuthorizerProtocol
from ..schemas import Role, SessionContext

logger = logging.getLogger(__name__)


class TokenAuthorizer:
    """Resolves a project share token to the role it grants."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def authorize(self, project_id: str, credential: Optional[str] = None) -> Role:
        if not credential:
            return Role.NONE
        with self.session_factory() as session:
            row = session.get(ProjectToken, credential)
            if row is None or row.project_id != project_id:
                return Role.NONE
            return Role(row.role)

    def grant(self, project_id: str, token: str, role: Role) -> None:
        with self.session_factory.begin() as session:
            row = session.get(ProjectToken, token)
            if row is None:
                session.add(ProjectToken(token=token, project_id=project_id, role=role.value))
            else:
                row.project_id = project_id
                row.role = role.value


def require_role(
    authorizer: AuthorizerProtocol,
    ctx: SessionContext,
    minimum: Role = Role.EDITOR,
) -> Role:
    """Raise AccessDeniedError unless the session holds at least ``minimum``."""
    role = authorizer.authorize(ctx.project_id, ctx.share_token)
    if role.rank < minimum.rank:
        logger.warning(
            "Access denied on project %s: role %s, %s required",
            ctx.project_id,
            role.value,
            minimum.value,
        )
        raise AccessDeniedError(
            f"Insufficient permissions: {minimum.value} role required"
        )
    return role
