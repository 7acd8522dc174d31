#!/usr/bin/env python3
"""
Cleanup Stale Upload Chunks from Supabase Storage

Chunks are normally removed right after a successful reassembly. Uploads
that were abandoned or failed leave their chunks behind; this script
removes them once the session has been idle for CHUNK_RETENTION_HOURS
(default: 48).

Session rows are left untouched so their status stays available.

Usage:
    python3 scripts/cleanup_stale_chunks.py [--dry-run]

Schedule as Railway cron job:
    0 4 * * * python3 scripts/cleanup_stale_chunks.py
"""

import os
import sys
import argparse
import logging
from datetime import datetime, timedelta, timezone

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from dotenv import load_dotenv
load_dotenv()

from core.config import Config
from core.session_store import SessionStore, UploadStatus
from core.storage_manager import StorageError, StorageManager

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def cleanup_stale_chunks(storage: StorageManager, sessions: SessionStore, dry_run: bool = False):
    """
    Delete chunks of sessions stuck in uploading or failed

    Args:
        storage: Storage manager for the video bucket
        sessions: Session store
        dry_run: If True, only log what would be deleted

    Returns:
        Tuple of (chunks deleted, errors)
    """
    cutoff = datetime.now(timezone.utc) - timedelta(hours=Config.CHUNK_RETENTION_HOURS)

    logger.info(f"🧹 Starting chunk cleanup (retention: {Config.CHUNK_RETENTION_HOURS} hours)")
    logger.info(f"   Cutoff date: {cutoff.isoformat()}")
    if dry_run:
        logger.info("   DRY RUN MODE - no actual deletions will occur")

    stale = sessions.list_stale([UploadStatus.UPLOADING, UploadStatus.FAILED], cutoff)
    logger.info(f"   Found {len(stale)} stale sessions")

    total_deleted = 0
    total_errors = 0

    for session in stale:
        session_id = session['session_id']

        try:
            keys = storage.list_session_chunks(session_id)
        except StorageError as e:
            logger.error(f"   ❌ Error listing chunks for {session_id}: {e}")
            total_errors += 1
            continue

        if not keys:
            continue

        if dry_run:
            logger.info(f"   [DRY RUN] Would delete {len(keys)} chunks for session {session_id} ({session['status']})")
            total_deleted += len(keys)
            continue

        for start in range(0, len(keys), Config.DELETE_BATCH_SIZE):
            batch = keys[start:start + Config.DELETE_BATCH_SIZE]
            try:
                storage.remove(batch)
                total_deleted += len(batch)
            except StorageError as e:
                logger.error(f"   ❌ Error deleting chunks for {session_id}: {e}")
                total_errors += 1

        logger.info(f"   🗑️ Deleted chunks for session {session_id}")

    logger.info(f"\n{'='*50}")
    logger.info("🏁 Cleanup complete!")
    logger.info(f"   {'Would delete' if dry_run else 'Deleted'}: {total_deleted} chunks")
    if total_errors > 0:
        logger.info(f"   Errors: {total_errors}")

    return total_deleted, total_errors


def main():
    parser = argparse.ArgumentParser(
        description='Cleanup stale upload chunks from Supabase Storage'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be deleted without actually deleting'
    )
    args = parser.parse_args()

    storage = StorageManager()
    cleanup_stale_chunks(storage, SessionStore(client=storage.supabase), dry_run=args.dry_run)


if __name__ == '__main__':
    main()
