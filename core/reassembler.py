"""
Chunked Upload Reassembler

Joins the chunks of a multi-part video upload back into one object in
Supabase storage. Chunks are fetched and written one at a time so peak
memory stays around one chunk, whatever the size of the video.

Once the assembled object exists the session is marked completed and the
chunk objects are deleted by a background task the caller may await or
ignore.
"""

import asyncio
import logging
import mimetypes
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional, Set

from core.config import Config
from core.session_store import SessionStore, UploadStatus
from core.storage_manager import StorageError, StorageManager

logger = logging.getLogger(__name__)


class ReassemblyError(Exception):
    """Base class for reassembly failures surfaced to the caller"""

    retryable = True

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message)
        self.session_id = session_id


class MissingChunkError(ReassemblyError):
    """A chunk could not be fetched (absent, empty, failed or timed out)"""

    def __init__(self, session_id: str, index: int, reason: str):
        super().__init__(f"Failed to download chunk {index}: {reason}", session_id=session_id)
        self.index = index
        # Chunk 0 gone means the session was never uploaded or was already cleaned up
        self.retryable = index != 0


class AssemblyUploadError(ReassemblyError):
    """The assembled object could not be written to storage"""


@dataclass
class ReassemblyResult:
    file_name: str
    file_size: int
    cleanup_task: Optional["asyncio.Task[int]"] = None


class ChunkReassembler:
    """Reassemble chunked uploads stored in a Supabase bucket"""

    def __init__(
        self,
        storage: StorageManager,
        sessions: SessionStore,
        delete_batch_size: int = Config.DELETE_BATCH_SIZE,
        progress_interval: int = Config.PROGRESS_LOG_INTERVAL,
        chunk_timeout: Optional[float] = None
    ):
        """
        Args:
            storage: Object store holding the chunks and the destination
            sessions: Store for the upload session rows
            delete_batch_size: Number of chunk keys removed per delete call
            progress_interval: Log progress every N chunks
            chunk_timeout: Seconds allowed for one chunk download (None waits forever)
        """
        self.storage = storage
        self.sessions = sessions
        self.delete_batch_size = delete_batch_size
        self.progress_interval = progress_interval
        self.chunk_timeout = chunk_timeout
        self._cleanup_tasks: Set[asyncio.Task] = set()

    async def iter_chunks(self, session_id: str, total_chunks: int) -> AsyncIterator[bytes]:
        """
        Yield chunk bytes in index order, fetching each only when requested

        Raises:
            MissingChunkError: On the first chunk that cannot be fetched
        """
        for index in range(total_chunks):
            key = self.storage.chunk_key(session_id, index)
            try:
                fetch = asyncio.to_thread(self.storage.download, key)
                if self.chunk_timeout:
                    data = await asyncio.wait_for(fetch, timeout=self.chunk_timeout)
                else:
                    data = await fetch
            except asyncio.TimeoutError as e:
                raise MissingChunkError(session_id, index, f"timed out after {self.chunk_timeout}s") from e
            except StorageError as e:
                raise MissingChunkError(session_id, index, str(e)) from e

            if index % self.progress_interval == 0 or index == total_chunks - 1:
                percent = round((index + 1) / total_chunks * 100)
                logger.info(f"📦 Processed chunk {index + 1}/{total_chunks} ({percent}%)")

            yield data

    async def reassemble(self, session_id: str, file_name: str, total_chunks: int) -> ReassemblyResult:
        """
        Join chunks 0..total_chunks-1 of a session into file_name

        Args:
            session_id: Upload session identifier
            file_name: Destination object key
            total_chunks: Number of chunks the initiator uploaded

        Returns:
            ReassemblyResult with the size of the assembled object and the
            background cleanup task

        Raises:
            ValueError: On missing parameters
            MissingChunkError: If any chunk cannot be fetched
            AssemblyUploadError: If the assembled object cannot be stored
        """
        if not session_id or not file_name or not total_chunks:
            raise ValueError("Missing required parameters: sessionId, fileName, or totalChunks")
        if total_chunks < 1:
            raise ValueError(f"totalChunks must be at least 1, got {total_chunks}")

        logger.info(f"🎬 Reassembling video: {file_name} with {total_chunks} chunks")

        current = await asyncio.to_thread(self.sessions.get_status, session_id)
        # A completed session is terminal and a processing one belongs to the run in flight:
        # either way this run rewrites the same bytes without touching status
        track_status = current not in (UploadStatus.COMPLETED, UploadStatus.PROCESSING)
        if current == UploadStatus.COMPLETED:
            logger.info(f"ℹ️ Session {session_id} already completed, re-assembling without status changes")
        elif current == UploadStatus.PROCESSING:
            logger.warning(
                f"⚠️ Session {session_id} is already processing in another run, leaving its status alone"
            )
        else:
            await asyncio.to_thread(
                self.sessions.update_status, session_id, UploadStatus.PROCESSING, current
            )

        try:
            with tempfile.TemporaryDirectory(prefix="reassembly_") as tmp_dir:
                payload_path = Path(tmp_dir) / "payload"
                file_size = await self._write_payload(session_id, total_chunks, payload_path)
                await self._upload_payload(session_id, file_name, payload_path)
        except ReassemblyError as e:
            logger.error(f"❌ Reassembly failed for session {session_id}: {e}")
            if track_status:
                await self._mark_failed(session_id)
            raise
        except Exception as e:
            logger.error(f"❌ Unexpected error reassembling session {session_id}: {e}", exc_info=True)
            if track_status:
                await self._mark_failed(session_id)
            raise ReassemblyError(f"An error occurred during file reassembly: {e}", session_id) from e

        logger.info(f"✅ Successfully uploaded reassembled file: {file_name} ({file_size} bytes)")

        if track_status:
            await asyncio.to_thread(
                self.sessions.update_status,
                session_id,
                UploadStatus.COMPLETED,
                UploadStatus.PROCESSING,
                file_size=file_size,
                assembled_file_path=file_name,
            )

        cleanup_task = asyncio.create_task(self.cleanup_chunks(session_id, total_chunks))
        self._cleanup_tasks.add(cleanup_task)
        cleanup_task.add_done_callback(self._cleanup_tasks.discard)

        return ReassemblyResult(file_name=file_name, file_size=file_size, cleanup_task=cleanup_task)

    async def _write_payload(self, session_id: str, total_chunks: int, payload_path: Path) -> int:
        """Stream every chunk into the payload file and return the byte count"""
        file_size = 0
        with open(payload_path, 'wb') as payload:
            async for data in self.iter_chunks(session_id, total_chunks):
                payload.write(data)
                file_size += len(data)

        logger.info(f"📦 Stream processing complete. Total size: {file_size} bytes")
        return file_size

    async def _upload_payload(self, session_id: str, file_name: str, payload_path: Path) -> None:
        content_type = mimetypes.guess_type(file_name)[0] or "video/mp4"
        logger.info(f"📤 Uploading reassembled file to storage: {file_name}")
        try:
            await asyncio.to_thread(
                self.storage.upload, file_name, payload_path, content_type, True
            )
        except StorageError as e:
            raise AssemblyUploadError(f"Failed to upload reassembled file: {e}", session_id) from e

    async def _mark_failed(self, session_id: str) -> None:
        await asyncio.to_thread(
            self.sessions.update_status, session_id, UploadStatus.FAILED, UploadStatus.PROCESSING
        )

    async def cleanup_chunks(self, session_id: str, total_chunks: int) -> int:
        """
        Delete a session's chunk objects in batches

        Best-effort: failures are logged as warnings and never raised, and
        the session status is left alone.

        Returns:
            Number of chunk keys removed
        """
        keys = [self.storage.chunk_key(session_id, i) for i in range(total_chunks)]
        removed = 0

        try:
            for start in range(0, len(keys), self.delete_batch_size):
                batch = keys[start:start + self.delete_batch_size]
                try:
                    await asyncio.to_thread(self.storage.remove, batch)
                except StorageError as e:
                    logger.warning(f"⚠️ Error cleaning up chunks {start}-{start + len(batch) - 1}: {e}")
                    continue

                previous = removed
                removed += len(batch)
                if removed // self.progress_interval != previous // self.progress_interval:
                    logger.info(f"🗑️ Removed {removed}/{total_chunks} chunks for session {session_id}")
        except Exception as e:
            logger.warning(f"⚠️ Chunk cleanup aborted for session {session_id}: {e}", exc_info=True)

        logger.info(f"🧹 Cleaned up {removed}/{total_chunks} chunks for session {session_id}")
        return removed

    async def wait_for_cleanup(self) -> None:
        """Wait for every pending background cleanup to finish"""
        if self._cleanup_tasks:
            logger.info(f"⏳ Waiting for {len(self._cleanup_tasks)} chunk cleanup task(s)")
            await asyncio.gather(*self._cleanup_tasks, return_exceptions=True)
