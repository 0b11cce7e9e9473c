"""Interfaces of the external collaborators."""

from .authorizer_protocol import AuthorizerProtocol
from .file_mirror_protocol import FileMirrorProtocol
from .git_remote_protocol import GitRemoteProtocol
from .staging_store_protocol import StagingStoreProtocol

__all__ = [
    "AuthorizerProtocol",
    "FileMirrorProtocol",
    "GitRemoteProtocol",
    "StagingStoreProtocol",
]
