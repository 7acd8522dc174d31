"""
Configuration management for the media monitor backend
"""

import os
from typing import Dict, Optional


class Config:
    """Centralized configuration constants and environment management"""

    # Storage layout
    VIDEO_BUCKET = os.getenv('VIDEO_BUCKET', 'video')
    CHUNK_PREFIX = 'chunks'
    SESSIONS_TABLE = 'chunked_upload_sessions'

    # Chunked upload settings
    CHUNK_SIZE = 5 * 1024 * 1024  # 5MB chunks
    MAX_UPLOAD_SIZE = 200 * 1024 * 1024  # 200MB limit for TV uploads
    UPLOAD_RETRIES = 3

    # Reassembly settings
    DELETE_BATCH_SIZE = 10
    PROGRESS_LOG_INTERVAL = 10
    CHUNK_RETENTION_HOURS = int(os.getenv('CHUNK_RETENTION_HOURS', '48'))

    # Realtime settings
    CONNECTION_POLL_INTERVAL = 10
    FEED_CHANNEL_NAME = 'dashboard-realtime'
    NOTIFICATION_DEDUP_SECONDS = 300

    # HTTP timeouts (seconds)
    LONG_TIMEOUT = 300

    @staticmethod
    def get_supabase_credentials() -> Dict[str, Optional[str]]:
        """Get Supabase URL and service role key"""
        return {
            'url': os.getenv('SUPABASE_URL'),
            'key': os.getenv('SUPABASE_SERVICE_ROLE_KEY'),
        }

    @staticmethod
    def get_chunk_fetch_timeout() -> Optional[float]:
        """Per-chunk download timeout in seconds (0 disables it)"""
        value = float(os.getenv('CHUNK_FETCH_TIMEOUT', '120'))
        return value if value > 0 else None

    @staticmethod
    def get_allowed_video_types() -> set:
        """Get MIME types accepted for chunked video uploads"""
        return {
            'video/mp4', 'video/quicktime', 'video/x-msvideo',
            'video/x-matroska', 'video/webm', 'video/mpeg'
        }

    @staticmethod
    def validate_environment() -> Dict[str, bool]:
        """Validate required environment variables and return status"""
        required = {
            'SUPABASE_URL': bool(os.getenv('SUPABASE_URL')),
            'SUPABASE_SERVICE_ROLE_KEY': bool(os.getenv('SUPABASE_SERVICE_ROLE_KEY')),
        }

        return {
            'required': required,
            'all_required_present': all(required.values()),
        }
