"""Error taxonomy shared by the stores, the GitHub client and the services."""

from typing import Optional


class GitStageError(Exception):
    """Base class for all application errors."""

    status_code: int = 500

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class AccessDeniedError(GitStageError):
    """Authorization failed or the remote rejected the credential."""

    status_code = 403


class NotFoundError(GitStageError):
    """A repository, branch, file or commit does not exist."""

    status_code = 404


class RemoteConflictError(GitStageError):
    """The branch ref moved on the remote and a non-forcing update was rejected.

    Callers must pull and retry; no automatic merge is attempted.
    """

    status_code = 409


class TransientNetworkError(GitStageError):
    """A REST call failed at the transport level or with an unexpected status."""

    status_code = 502


class ValidationError(GitStageError):
    status_code = 400


class PrimeRepositoryError(GitStageError):
    """The project's prime repository cannot be unlinked."""

    status_code = 409


class SaveFailureError(GitStageError):
    """Staging or unstaging a buffered file failed. The edit stays buffered."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to save {path}", detail=str(cause) if cause else None)
        self.path = path
        self.cause = cause
