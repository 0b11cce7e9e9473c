"""In-memory buffer of open files with staging-aware save orchestration."""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from ..errors import SaveFailureError
from ..models import FileBufferEntry, LoadedContent
from ..protocols import FileMirrorProtocol, StagingStoreProtocol
from ..schemas import OperationType, StagedChange
from ..utils.optimistic import optimistic
from .task_registry import SaveTaskRegistry

logger = logging.getLogger(__name__)

SaveFailureNotifier = Callable[[str, BaseException], None]


class FileBufferManager:
    """
    Per-client cache of open files for one repository.

    Each entry tracks three snapshots of a file: the live ``content``, the
    ``original_content`` baseline loaded from storage, and the
    ``last_saved_content`` most recently written to the staging store.
    ``is_dirty`` compares content against the last save only; the baseline is
    consulted when saving to decide between staging and unstaging.
    """

    def __init__(
        self,
        repo_id: str,
        staging_store: StagingStoreProtocol,
        file_mirror: FileMirrorProtocol,
        on_save_failed: Optional[SaveFailureNotifier] = None,
        on_file_saved: Optional[Callable[[str], None]] = None,
        task_registry: Optional[SaveTaskRegistry] = None,
    ):
        self.repo_id = repo_id
        self.staging_store = staging_store
        self.file_mirror = file_mirror
        self.on_save_failed = on_save_failed
        self.on_file_saved = on_file_saved
        self.tasks = task_registry or SaveTaskRegistry()
        self._buffer: Dict[str, FileBufferEntry] = {}
        self.current_path: Optional[str] = None

    # --- State ---

    @property
    def current_file(self) -> Optional[FileBufferEntry]:
        if self.current_path is None:
            return None
        return self._buffer.get(self.current_path)

    @property
    def has_dirty_files(self) -> bool:
        return any(entry.is_dirty for entry in self._buffer.values())

    @property
    def is_saving(self) -> bool:
        return any(entry.is_saving for entry in self._buffer.values())

    def get_entry(self, path: str) -> Optional[FileBufferEntry]:
        return self._buffer.get(path)

    def buffered_paths(self) -> List[str]:
        return list(self._buffer)

    # --- Loading ---

    async def load_file_content(
        self, file_id: Optional[str], path: str, is_staged: bool = False
    ) -> Optional[LoadedContent]:
        """Load a file's content and baseline. Returns None if storage fails."""
        try:
            if is_staged:
                staged = await asyncio.to_thread(
                    self.staging_store.get_staged_changes, self.repo_id
                )
                latest = _latest_change_for(staged, path)
                if latest is not None:
                    return LoadedContent(
                        content=latest.new_content or "",
                        original_content=latest.old_content or "",
                    )

            if file_id:
                committed = await asyncio.to_thread(
                    self.file_mirror.get_file_content, file_id
                )
            else:
                committed = await asyncio.to_thread(
                    self.file_mirror.get_file_by_path, self.repo_id, path
                )
            if committed is not None:
                # Nothing staged: the baseline is the committed content itself
                return LoadedContent(
                    content=committed.content, original_content=committed.content
                )
            return LoadedContent(content="", original_content="")
        except Exception as e:
            logger.error("Error loading file content for %s: %s", path, e)
            return None

    async def switch_file(
        self,
        file_id: Optional[str],
        path: str,
        is_staged: bool = False,
        force_reload: bool = False,
    ) -> None:
        """Open ``path``, saving the previously open file in the background if dirty."""
        previous = self.current_file
        if previous is not None and previous.path == path and previous.is_dirty:
            # Unsaved edits of the open file are staged before it is reloaded
            await self._wait_for_background_save(path)
            try:
                await self.save_file_async(path)
            except SaveFailureError:
                logger.warning("Skipping reload of %s, its edits could not be saved", path)
                return

        if force_reload or path not in self._buffer:
            loaded = await self.load_file_content(file_id, path, is_staged)
            if loaded is not None:
                self._buffer[path] = FileBufferEntry(
                    id=file_id,
                    path=path,
                    content=loaded.content,
                    original_content=loaded.original_content,
                    last_saved_content=loaded.content,
                    is_staged=is_staged,
                )
        self.current_path = path

        # The previous entry is no longer current when its save starts
        if previous is not None and previous.path != path and previous.is_dirty:
            self._save_in_background(previous.path)

    def update_content(self, new_content: str) -> None:
        entry = self.current_file
        if entry is None:
            return
        entry.content = new_content
        entry.is_dirty = new_content != entry.last_saved_content

    # --- Saving ---

    async def save_file_async(self, path: str) -> None:
        """
        Persist a buffered file to the staging store.

        Does nothing unless the entry is dirty and not already saving. Content
        equal to the baseline is unstaged instead of staged. Raises
        SaveFailureError when the store call fails; the entry stays dirty.
        """
        entry = self._buffer.get(path)
        if entry is None or not entry.is_dirty or entry.is_saving:
            return

        content = entry.content
        try:
            with optimistic(entry, is_saving=True):
                if content == entry.original_content:
                    logger.info("Content reverted to baseline, unstaging %s", path)
                    await asyncio.to_thread(
                        self.staging_store.unstage_file, self.repo_id, path
                    )
                    staged = False
                else:
                    await self._stage(entry, content)
                    staged = True
        except Exception as e:
            logger.error("Error saving file %s: %s", path, e)
            if self.on_save_failed is not None:
                self.on_save_failed(path, e)
            raise SaveFailureError(path, e) from e

        entry.is_saving = False
        entry.last_saved_content = content
        entry.is_dirty = entry.content != content
        entry.is_staged = staged

        if path != self.current_path and not entry.is_dirty:
            if self._buffer.get(path) is entry:
                del self._buffer[path]
        if self.on_file_saved is not None:
            self.on_file_saved(path)

    async def _stage(self, entry: FileBufferEntry, content: str) -> None:
        staged = await asyncio.to_thread(
            self.staging_store.get_staged_changes, self.repo_id
        )
        existing = _latest_change_for(staged, entry.path)

        # A still-uncommitted new file has no prior content
        old_content = entry.original_content
        if existing is not None:
            if existing.operation_type == OperationType.ADD:
                old_content = ""
            await asyncio.to_thread(
                self.staging_store.unstage_file, self.repo_id, entry.path
            )

        if existing is not None:
            operation_type = existing.operation_type
        elif entry.id and not entry.is_staged:
            operation_type = OperationType.EDIT
        else:
            operation_type = OperationType.ADD

        await asyncio.to_thread(
            self.staging_store.stage_file_change,
            self.repo_id,
            operation_type,
            entry.path,
            old_content,
            content,
        )

    async def save_current_file(self) -> bool:
        """Explicit save of the open file. Returns False if the save failed."""
        path = self.current_path
        if path is None:
            return False

        await self._wait_for_background_save(path)
        entry = self._buffer.get(path)
        if entry is None or not entry.is_dirty:
            return True
        try:
            await self.save_file_async(path)
        except SaveFailureError:
            return False
        return True

    def save_all_dirty(self) -> None:
        """Start saving every dirty file without waiting for completion."""
        for entry in list(self._buffer.values()):
            if entry.is_dirty and not entry.is_saving:
                self._save_in_background(entry.path)

    def _save_in_background(self, path: str) -> asyncio.Task:
        return self.tasks.schedule(path, self._background_save(path))

    async def _background_save(self, path: str) -> None:
        try:
            await self.save_file_async(path)
        except SaveFailureError:
            # Already logged and reported through on_save_failed
            pass

    async def _wait_for_background_save(self, path: str) -> None:
        task = self.tasks.get(path)
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    async def flush(self) -> None:
        """Wait for every background save to finish."""
        await self.tasks.join_all()

    join_all = flush

    # --- Eviction and reload ---

    async def close_file(self) -> bool:
        """
        Save the open file if dirty, then evict it.

        Returns False and keeps the entry buffered when the save fails.
        """
        path = self.current_path
        if path is None:
            return True

        await self._wait_for_background_save(path)
        entry = self._buffer.get(path)
        if entry is not None and entry.is_dirty:
            try:
                await self.save_file_async(path)
            except SaveFailureError:
                logger.warning("Keeping %s open after failed save", path)
                return False

        self._buffer.pop(path, None)
        self.current_path = None
        return True

    def clear_file(self, path: str) -> None:
        """Evict a file without saving it."""
        self._buffer.pop(path, None)
        if self.current_path == path:
            self.current_path = None

    async def reload_current_file(self) -> None:
        """Re-read the open file from storage, discarding unsaved edits."""
        entry = self.current_file
        if entry is None:
            return

        loaded = await self.load_file_content(entry.id, entry.path, entry.is_staged)
        if loaded is None:
            return
        entry.content = loaded.content
        entry.original_content = loaded.original_content
        entry.last_saved_content = loaded.content
        entry.is_dirty = False
        entry.is_saving = False


def _latest_change_for(
    changes: List[StagedChange], path: str
) -> Optional[StagedChange]:
    matches = [change for change in changes if change.file_path == path]
    if not matches:
        return None
    return max(
        matches,
        key=lambda change: change.created_at.timestamp() if change.created_at else 0,
    )
