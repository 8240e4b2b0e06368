"""Upload queue: validation and strictly sequential processing.

Files are validated when they enter the queue and parsed one at a time, so
only one file's intermediate structures are alive at once and progress is
unambiguous per file. A failure in one file never touches groups that were
already imported.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from pathlib import PurePath

from loguru import logger

from geoimport.errors import (
    FileTooLargeError,
    FileValidationError,
    ParseCancelledError,
    UnsupportedFileTypeError,
)
from geoimport.pipeline import (
    SUPPORTED_EXTENSIONS,
    CancellationToken,
    ChunkedParser,
    ParseResult,
    ProgressStage,
)
from geoimport.store import actions as a
from geoimport.store.state import FileStatus, UploadedFileRecord
from geoimport.store.store import ImportStore

MAX_UPLOAD_BYTES = 50 * 1024 * 1024


def validate_upload(name: str, size: int, max_bytes: int = MAX_UPLOAD_BYTES) -> None:
    """Reject files by extension or size before any parsing.

    Raises:
        UnsupportedFileTypeError: Extension is not .kml or .kmz.
        FileTooLargeError: File exceeds max_bytes.
        ValueError: Negative size (caller bug).
    """
    if size < 0:
        raise ValueError(f"file size must be >= 0, got {size}")
    extension = PurePath(name).suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFileTypeError(f"Only .kml or .kmz files are accepted: {name}")
    if size > max_bytes:
        raise FileTooLargeError(
            f"File too large: {size / 1024 / 1024:.2f}MB (max {max_bytes / 1024 / 1024:.0f}MB)"
        )


@dataclass(frozen=True)
class UploadedBlob:
    name: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class ImportProcessor:
    """Feeds queued uploads through the ChunkedParser into an ImportStore."""

    def __init__(
        self,
        store: ImportStore,
        parser: ChunkedParser | None = None,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        time_budget: float | None = None,
    ) -> None:
        self.store = store
        self.parser = parser or ChunkedParser()
        self.max_upload_bytes = max_upload_bytes
        self.time_budget = time_budget
        self._blobs: dict[str, UploadedBlob] = {}
        self._tokens: dict[str, CancellationToken] = {}
        self._queue_lock = asyncio.Lock()

    def enqueue(self, name: str, data: bytes) -> UploadedFileRecord:
        """Add a file to the queue, rejecting invalid ones immediately."""
        blob = UploadedBlob(name, data)
        file_id = f"{PurePath(name).name}-{blob.size}-{uuid.uuid4().hex[:8]}"
        try:
            validate_upload(name, blob.size, self.max_upload_bytes)
        except FileValidationError as e:
            logger.warning(f"Rejected {name}: {e.message}")
            record = UploadedFileRecord(
                id=file_id, name=name, size=blob.size,
                status=FileStatus.ERROR, progress=0, error=e.message,
            )
            self.store.dispatch(a.AddFiles((record,)))
            return record

        record = UploadedFileRecord(id=file_id, name=name, size=blob.size)
        self._blobs[file_id] = blob
        self._tokens[file_id] = CancellationToken(self.time_budget)
        self.store.dispatch(a.AddFiles((record,)))
        return record

    def cancel(self, file_id: str) -> bool:
        token = self._tokens.get(file_id)
        if token is None:
            return False
        token.cancel()
        return True

    def remove(self, file_id: str) -> None:
        self.cancel(file_id)
        self._blobs.pop(file_id, None)
        self._tokens.pop(file_id, None)
        self.store.dispatch(a.RemoveFile(file_id))

    def clear(self) -> None:
        """Cancel everything in flight and reset the store."""
        for token in self._tokens.values():
            token.cancel()
        self._blobs.clear()
        self._tokens.clear()
        self.store.clear_import_data()

    def retry(self, file_id: str) -> bool:
        """Put a failed or cancelled file back in the queue."""
        if file_id not in self._blobs:
            return False
        self._tokens[file_id] = CancellationToken(self.time_budget)
        self.store.dispatch(a.ResetFile(file_id))
        return True

    def _progress(self, file_id: str, percent: int) -> None:
        self.store.dispatch(a.UpdateFile(file_id, progress=int(percent)))

    async def process_file(self, file_id: str) -> ParseResult:
        """Parse one queued file and commit the result to the store.

        Raises:
            KeyError: If the file is not queued.
        """
        blob = self._blobs[file_id]
        token = self._tokens.setdefault(file_id, CancellationToken(self.time_budget))
        self._progress(file_id, ProgressStage.VALIDATION)

        logger.info(f"Processing {blob.name} ({blob.size / 1024 / 1024:.2f}MB)")
        result = await self.parser.parse(
            blob.name,
            blob.data,
            token,
            color_offset=len(self.store.state.layer_groups),
            on_progress=lambda percent: self._progress(file_id, percent),
        )

        if result.ok and token.cancelled:
            # Cancelled after the last checkpoint: nothing is committed
            result = ParseResult(blob.name, error=ParseCancelledError("Operation cancelled"))

        if result.ok:
            group = result.layer_group
            self.store.add_layer_group(group)
            self.store.dispatch(a.UpdateFile(
                file_id,
                status=FileStatus.SUCCESS,
                progress=int(ProgressStage.COMPLETE),
                layer_group_id=group.id,
            ))
            self._blobs.pop(file_id, None)
            self._tokens.pop(file_id, None)
        elif result.cancelled:
            # Removed files stay gone; only queued ones get a fresh token
            if file_id in self._blobs:
                self._tokens[file_id] = CancellationToken(self.time_budget)
                self.store.dispatch(a.ResetFile(file_id))
        else:
            self.store.dispatch(a.UpdateFile(
                file_id, status=FileStatus.ERROR, progress=0, error=result.error.message,
            ))
        return result

    async def process_pending(self) -> list[ParseResult]:
        """Process every pending file, one after another, in queue order.

        Overlapping calls wait for each other, so a file is never parsed
        twice and two parses never interleave.
        """
        async with self._queue_lock:
            results = []
            for record in list(self.store.state.files):
                if record.status != FileStatus.PENDING or record.id not in self._blobs:
                    continue
                results.append(await self.process_file(record.id))
            return results
