"""
Supabase Storage Manager

Handles downloading, uploading and deleting chunk and video objects
in Supabase storage buckets.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union
from supabase import create_client, Client

from core.config import Config

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a storage operation fails"""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class StorageManager:
    """Manage Supabase storage objects for chunked uploads"""

    def __init__(self, bucket_name: Optional[str] = None, client: Optional[Client] = None):
        """Initialize storage manager with Supabase client

        Args:
            bucket_name: Optional bucket name to use (defaults to the video bucket)
            client: Optional pre-built Supabase client
        """
        if client is None:
            credentials = Config.get_supabase_credentials()
            if not credentials['url'] or not credentials['key']:
                raise ValueError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY environment variables")
            client = create_client(credentials['url'], credentials['key'])

        self.supabase: Client = client
        self.bucket_name = bucket_name or Config.VIDEO_BUCKET

    @staticmethod
    def chunk_key(session_id: str, index: int) -> str:
        """
        Storage key of one chunk

        Examples:
            >>> StorageManager.chunk_key("abc", 7)
            'chunks/abc/chunk_0007'
        """
        return f"{Config.CHUNK_PREFIX}/{session_id}/chunk_{index:04d}"

    def download(self, key: str) -> bytes:
        """
        Download an object's bytes

        Raises:
            StorageError: If the object is missing, empty or the download fails
        """
        try:
            data = self.supabase.storage.from_(self.bucket_name).download(key)
        except Exception as e:
            raise StorageError(f"Failed to download {key}: {e}", key=key) from e

        if not data:
            raise StorageError(f"Object {key} is empty or missing", key=key)

        return data

    def upload(
        self,
        key: str,
        file: Union[bytes, str, Path],
        content_type: str = "application/octet-stream",
        upsert: bool = True
    ) -> None:
        """
        Upload bytes or a local file to storage

        Args:
            key: Destination object key
            file: Raw bytes or path to a local file
            content_type: MIME type stored with the object
            upsert: Overwrite an existing object at the same key

        Raises:
            StorageError: If the upload fails
        """
        try:
            self.supabase.storage.from_(self.bucket_name).upload(
                path=key,
                file=file,
                file_options={
                    "content-type": content_type,
                    "cache-control": "3600",
                    "upsert": "true" if upsert else "false"
                }
            )
        except Exception as e:
            raise StorageError(f"Failed to upload {key}: {e}", key=key) from e

    def remove(self, keys: List[str]) -> None:
        """
        Delete a batch of objects in one call

        Raises:
            StorageError: If the delete call fails
        """
        if not keys:
            return

        try:
            self.supabase.storage.from_(self.bucket_name).remove(keys)
        except Exception as e:
            raise StorageError(f"Failed to remove {len(keys)} objects: {e}") from e

    def list_session_chunks(self, session_id: str) -> List[str]:
        """
        List the chunk keys still stored for a session

        Returns:
            Sorted list of chunk keys (empty if the folder is gone)
        """
        folder_path = f"{Config.CHUNK_PREFIX}/{session_id}"
        try:
            files = self.supabase.storage.from_(self.bucket_name).list(folder_path)
        except Exception as e:
            raise StorageError(f"Failed to list {folder_path}: {e}") from e

        return sorted(f"{folder_path}/{file['name']}" for file in files or [])
