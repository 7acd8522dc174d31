#!/usr/bin/env python3
"""
Upload a large video in chunks and reassemble it on the backend

Usage:
    python3 scripts/upload_chunked_video.py <video> [options]

Examples:
    python3 scripts/upload_chunked_video.py noticiero.mp4
    python3 scripts/upload_chunked_video.py noticiero.mp4 --resume noticiero.upload.json

Options:
    --resume        Continue an interrupted upload from its state file
    --api-url       API server URL (default: http://localhost:8000)

Environment Variables:
    SUPABASE_URL                Supabase project URL
    SUPABASE_SERVICE_ROLE_KEY   Service role key for storage and session rows
    SUPABASE_AUTH_TOKEN         Access token of the uploading user
    API_URL                     Alternative to --api-url flag
"""

import argparse
import logging
import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from dotenv import load_dotenv
load_dotenv('.env.local')

from core.chunked_uploader import ChunkedUploader, ChunkedUploadSession, UploadError
from core.session_store import SessionStore
from core.storage_manager import StorageManager

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description='Upload a large video in chunks',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('video', type=Path, help='Path to the video file')
    parser.add_argument('--resume', type=Path,
                        help='State file of an interrupted upload to continue')
    parser.add_argument('--api-url', default=os.environ.get('API_URL', 'http://localhost:8000'),
                        help='API server URL (default: http://localhost:8000)')
    args = parser.parse_args()

    token = os.environ.get('SUPABASE_AUTH_TOKEN')
    if not token:
        logger.error("Missing SUPABASE_AUTH_TOKEN environment variable")
        sys.exit(1)

    storage = StorageManager()
    sessions = SessionStore(client=storage.supabase)
    uploader = ChunkedUploader(storage, sessions, args.api_url, token)

    if args.resume:
        state_file = args.resume
        session = ChunkedUploadSession.load(state_file)
        logger.info(f"🔁 Resuming session {session.session_id} ({len(session.uploaded)}/{session.total_chunks} chunks done)")
    else:
        user = storage.supabase.auth.get_user(token)
        session = uploader.prepare(args.video, user.user.id)
        state_file = args.video.with_suffix('.upload.json')
        session.save(state_file)
        logger.info(f"📝 Upload state saved to {state_file}")

    def on_progress(done: int, total: int) -> None:
        session.save(state_file)
        logger.info(f"📤 Uploaded chunk {done}/{total} ({round(done / total * 90)}%)")

    try:
        uploader.upload_chunks(session, args.video, on_progress)
        result = uploader.request_reassembly(session)
    except UploadError as e:
        logger.error(f"❌ {e}")
        if e.retryable:
            logger.info(f"   Resume with: --resume {state_file}")
        sys.exit(1)

    state_file.unlink(missing_ok=True)
    logger.info(f"✅ Uploaded {result.get('fileName')} ({result.get('fileSize')} bytes)")


if __name__ == '__main__':
    main()
