"""Stage file edits and synchronize them with remote Git repositories."""

__version__ = "0.1.0"
