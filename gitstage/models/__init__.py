"""Models for the application."""

from .file_buffer import FileBufferEntry, LoadedContent

__all__ = ["FileBufferEntry", "LoadedContent"]
