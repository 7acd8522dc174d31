"""
Upload Session Store

Reads and writes rows of the chunked_upload_sessions table.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from supabase import create_client, Client

from core.config import Config

logger = logging.getLogger(__name__)


class UploadStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# A retry of a failed run starts a new run, so failed -> processing is allowed
_TRANSITIONS = {
    UploadStatus.UPLOADING: {UploadStatus.PROCESSING},
    UploadStatus.PROCESSING: {UploadStatus.COMPLETED, UploadStatus.FAILED},
    UploadStatus.FAILED: {UploadStatus.PROCESSING},
    UploadStatus.COMPLETED: set(),
}


def can_transition(current: Optional[UploadStatus], new: UploadStatus) -> bool:
    """
    Check whether a session may move from current to new status

    Unknown current status (row missing or unreadable) is treated as permissive.
    """
    if current is None:
        return True
    return new in _TRANSITIONS[current]


class SessionStore:
    """Manage chunked upload session rows in Supabase"""

    def __init__(self, client: Optional[Client] = None, table: Optional[str] = None):
        if client is None:
            credentials = Config.get_supabase_credentials()
            if not credentials['url'] or not credentials['key']:
                raise ValueError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY environment variables")
            client = create_client(credentials['url'], credentials['key'])

        self.supabase: Client = client
        self.table = table or Config.SESSIONS_TABLE

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a session row, or None if it does not exist"""
        result = self.supabase.table(self.table)\
            .select('*')\
            .eq('session_id', session_id)\
            .limit(1)\
            .execute()

        return result.data[0] if result.data else None

    def get_status(self, session_id: str) -> Optional[UploadStatus]:
        """
        Get the current status of a session

        Returns:
            The status, or None if the row is missing or could not be read
        """
        try:
            row = self.get(session_id)
        except Exception as e:
            logger.warning(f"⚠️ Could not check session status for {session_id}: {e}")
            return None

        if not row or not row.get('status'):
            return None

        try:
            return UploadStatus(row['status'])
        except ValueError:
            logger.warning(f"⚠️ Unknown status '{row['status']}' for session {session_id}")
            return None

    def create(
        self,
        session_id: str,
        file_name: str,
        total_chunks: int,
        file_size: int,
        user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Insert a new session in the uploading state"""
        row = {
            'session_id': session_id,
            'file_name': file_name,
            'total_chunks': total_chunks,
            'file_size': file_size,
            'uploaded_chunks': 0,
            'status': UploadStatus.UPLOADING.value,
        }
        if user_id:
            row['user_id'] = user_id

        result = self.supabase.table(self.table).insert(row).execute()
        logger.info(f"📝 Created upload session {session_id} ({total_chunks} chunks)")
        return result.data[0] if result.data else row

    def update_status(
        self,
        session_id: str,
        status: UploadStatus,
        current: Optional[UploadStatus] = None,
        **fields: Any
    ) -> bool:
        """
        Write a new status (plus optional extra columns) for a session

        Args:
            session_id: Session to update
            status: New status
            current: Status the caller last observed, used to refuse illegal transitions
            **fields: Extra columns to write alongside the status

        Returns:
            True if the row was written. Failures are logged, never raised.
        """
        if not can_transition(current, status):
            logger.warning(
                f"⚠️ Refusing status change {current.value} -> {status.value} for session {session_id}"
            )
            return False

        update = {
            'status': status.value,
            'updated_at': datetime.now(timezone.utc).isoformat(),
            **fields,
        }

        try:
            self.supabase.table(self.table).update(update).eq('session_id', session_id).execute()
        except Exception as e:
            logger.warning(f"⚠️ Could not update session {session_id} to {status.value}: {e}")
            return False

        logger.info(f"📝 Session {session_id} -> {status.value}")
        return True

    def record_chunk_uploaded(self, session_id: str, uploaded_chunks: int) -> None:
        """Store the number of chunks the initiator has uploaded so far"""
        try:
            self.supabase.table(self.table)\
                .update({'uploaded_chunks': uploaded_chunks})\
                .eq('session_id', session_id)\
                .execute()
        except Exception as e:
            logger.warning(f"⚠️ Could not record chunk progress for {session_id}: {e}")

    def list_stale(self, statuses: Iterable[UploadStatus], older_than: datetime) -> List[Dict[str, Any]]:
        """Find sessions in the given statuses last updated before a cutoff"""
        result = self.supabase.table(self.table)\
            .select('session_id, file_name, total_chunks, status, updated_at')\
            .in_('status', [s.value for s in statuses])\
            .lt('updated_at', older_than.isoformat())\
            .execute()

        return result.data or []
