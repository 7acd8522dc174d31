"""
Chunked Video Uploader

Client side of a chunked upload: splits a local video into fixed-size
chunks, uploads each one to storage with retries, then asks the backend
to reassemble them. Progress is kept in a ChunkedUploadSession so an
interrupted upload can be resumed.
"""

import json
import logging
import mimetypes
import os
import re
import uuid
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

from core.config import Config
from core.session_store import SessionStore
from core.storage_manager import StorageError, StorageManager

logger = logging.getLogger(__name__)


class UploadError(Exception):
    """Raised when a chunked upload cannot be completed"""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


def sanitize_file_name(file_name: str) -> str:
    """
    Make a file name safe for a storage key

    Examples:
        >>> sanitize_file_name("Noticiero Central (1).MP4")
        'noticiero_central__1_.mp4'
    """
    stem, ext = os.path.splitext(file_name)
    sanitized = re.sub(r'[^a-zA-Z0-9]', '_', stem)
    return f"{sanitized}{ext}".lower()


@dataclass
class ChunkedUploadSession:
    session_id: str
    file_name: str
    total_chunks: int
    file_size: int
    uploaded: List[int] = field(default_factory=list)

    def save(self, path: Path) -> None:
        path.write_text(json.dumps(asdict(self), indent=2))

    @classmethod
    def load(cls, path: Path) -> "ChunkedUploadSession":
        return cls(**json.loads(path.read_text()))


class ChunkedUploader:
    """Upload large videos in chunks and trigger server-side reassembly"""

    def __init__(
        self,
        storage: StorageManager,
        sessions: SessionStore,
        api_base_url: str,
        token: str,
        chunk_size: int = Config.CHUNK_SIZE,
        max_retries: int = Config.UPLOAD_RETRIES,
        max_file_size: int = Config.MAX_UPLOAD_SIZE,
        sleep: Callable[[float], None] = time.sleep,
        http: Optional[requests.Session] = None
    ):
        self.storage = storage
        self.sessions = sessions
        self.api_base_url = api_base_url.rstrip('/')
        self.token = token
        self.chunk_size = chunk_size
        self.max_retries = max_retries
        self.max_file_size = max_file_size
        self.sleep = sleep
        self.http = http or requests.Session()

    def prepare(self, path: Path, user_id: str) -> ChunkedUploadSession:
        """
        Validate a local video and register a new upload session

        Raises:
            UploadError: If the file is not a video or is too large
        """
        content_type = mimetypes.guess_type(path.name)[0] or ''
        if content_type not in Config.get_allowed_video_types():
            raise UploadError(f"Only video files can be uploaded, got {content_type or 'unknown type'}", retryable=False)

        file_size = path.stat().st_size
        if file_size > self.max_file_size:
            raise UploadError(
                f"File exceeds the {self.max_file_size // (1024 * 1024)}MB limit",
                retryable=False
            )

        timestamp = int(time.time() * 1000)
        session = ChunkedUploadSession(
            session_id=f"{user_id}_{timestamp}_{uuid.uuid4().hex[:9]}",
            file_name=f"{user_id}/{timestamp}_{sanitize_file_name(path.name)}",
            total_chunks=max(1, -(-file_size // self.chunk_size)),
            file_size=file_size,
        )

        self.sessions.create(
            session.session_id,
            session.file_name,
            session.total_chunks,
            file_size,
            user_id=user_id
        )
        return session

    def upload_chunks(self, session: ChunkedUploadSession, path: Path,
                      on_progress: Optional[Callable[[int, int], None]] = None) -> None:
        """
        Upload every chunk not yet marked uploaded in the session

        Raises:
            UploadError: When a chunk still fails after max_retries attempts
        """
        with open(path, 'rb') as f:
            for index in range(session.total_chunks):
                if index in session.uploaded:
                    continue

                f.seek(index * self.chunk_size)
                data = f.read(self.chunk_size)
                self._upload_chunk(session, index, data)

                session.uploaded.append(index)
                self.sessions.record_chunk_uploaded(session.session_id, len(session.uploaded))
                if on_progress:
                    on_progress(len(session.uploaded), session.total_chunks)

    def _upload_chunk(self, session: ChunkedUploadSession, index: int, data: bytes) -> None:
        key = self.storage.chunk_key(session.session_id, index)

        for attempt in range(1, self.max_retries + 1):
            try:
                self.storage.upload(key, data, "application/octet-stream", True)
                return
            except StorageError as e:
                logger.warning(f"⚠️ Chunk {index} upload failed, retry {attempt}: {e}")
                if attempt >= self.max_retries:
                    raise UploadError(
                        f"Error uploading chunk {index + 1}/{session.total_chunks}. Try resuming the upload."
                    ) from e
                self.sleep(2 ** attempt)

    def request_reassembly(self, session: ChunkedUploadSession) -> Dict[str, Any]:
        """Ask the backend to join the uploaded chunks"""
        response = self.http.post(
            f"{self.api_base_url}/api/uploads/reassemble",
            json={
                'sessionId': session.session_id,
                'fileName': session.file_name,
                'totalChunks': session.total_chunks,
            },
            headers={'Authorization': f"Bearer {self.token}"},
            timeout=Config.LONG_TIMEOUT
        )

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok:
            detail = body.get('detail', body) if isinstance(body, dict) else {}
            if not isinstance(detail, dict):
                detail = {'error': str(detail)}
            raise UploadError(
                f"Error processing the file: {detail.get('error', response.status_code)}",
                retryable=detail.get('retryable', True)
            )

        return body

    def upload_file(self, path: Path, user_id: str,
                    on_progress: Optional[Callable[[int, int], None]] = None) -> Dict[str, Any]:
        """Prepare, upload and reassemble a local video in one call"""
        session = self.prepare(path, user_id)
        logger.info(f"📤 Uploading {path.name} in {session.total_chunks} chunks (session {session.session_id})")
        self.upload_chunks(session, path, on_progress)
        return self.request_reassembly(session)
