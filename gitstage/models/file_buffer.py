from dataclasses import dataclass
from typing import Optional


@dataclass
class LoadedContent:
    content: str
    original_content: str


@dataclass
class FileBufferEntry:
    """An open file with its three content snapshots."""

    id: Optional[str]
    path: str
    content: str
    original_content: str  # Baseline for diffs and revert detection, set on load only
    last_saved_content: str  # What was last persisted to staging
    is_dirty: bool = False
    is_saving: bool = False
    is_staged: bool = False
