"""
FastAPI Main Application

Backend for the media monitoring service: chunked video reassembly and
the live content feed.
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

# Load environment variables from .env.local
load_dotenv('.env.local')

# Setup logging with rotation
logs_dir = Path(__file__).parent.parent / 'logs'
logs_dir.mkdir(parents=True, exist_ok=True)
log_file = logs_dir / 'backend.log'

file_handler = RotatingFileHandler(
    log_file,
    maxBytes=10_000_000,  # 10MB per file
    backupCount=5,
    encoding='utf-8'
)
console_handler = logging.StreamHandler()

log_format = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
file_handler.setFormatter(log_format)
console_handler.setFormatter(log_format)

log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    handlers=[file_handler, console_handler]
)

logger = logging.getLogger(__name__)
logger.info(f"Logging to file: {log_file}")

from app.routes import realtime, uploads
from core.config import Config
from core.reassembler import ChunkReassembler
from core.realtime.subscription_manager import SubscriptionManager
from core.realtime.supabase_provider import SupabaseChannelProvider
from core.realtime.types import ConnectionStatus
from core.session_store import SessionStore
from core.storage_manager import StorageManager


def _log_connection_status(connection_status: ConnectionStatus) -> None:
    if connection_status == ConnectionStatus.JOINED:
        logger.info("✅ Realtime connection healthy")
    else:
        logger.warning(f"⚠️ Realtime connection status: {connection_status.value}")


def _log_realtime_error(error: Exception) -> None:
    logger.error(f"❌ Realtime channel error: {error}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for startup and shutdown"""
    logger.info("🚀 Starting Media Monitor Backend")
    logger.info(f"   Environment: {os.getenv('ENVIRONMENT', 'development')}")
    logger.info(f"   Video bucket: {Config.VIDEO_BUCKET}")

    env_status = Config.validate_environment()
    if not env_status['all_required_present']:
        missing = [name for name, present in env_status['required'].items() if not present]
        logger.error(f"❌ Missing required environment variables: {', '.join(missing)}")
    else:
        logger.info("✅ All required environment variables present")

        storage = StorageManager()
        app.state.sessions = SessionStore(client=storage.supabase)
        app.state.reassembler = ChunkReassembler(
            storage,
            app.state.sessions,
            chunk_timeout=Config.get_chunk_fetch_timeout()
        )

        provider = await SupabaseChannelProvider.from_env()
        manager = SubscriptionManager(provider)
        manager.set_debug_mode(os.getenv('REALTIME_DEBUG', 'false').lower() == 'true')
        manager.add_connection_listener(_log_connection_status)
        manager.add_error_listener(_log_realtime_error)
        manager.start_connection_monitor(Config.CONNECTION_POLL_INTERVAL)
        app.state.subscriptions = manager

    yield

    logger.info("👋 Shutting down Media Monitor Backend")

    manager = getattr(app.state, 'subscriptions', None)
    if manager is not None:
        await manager.stop_connection_monitor()
        await manager.close_all()

    reassembler = getattr(app.state, 'reassembler', None)
    if reassembler is not None:
        await reassembler.wait_for_cleanup()


app = FastAPI(
    title="Media Monitor API",
    description="Backend service for chunked media uploads and live monitoring feeds",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(uploads.router, prefix="/api/uploads", tags=["uploads"])
app.include_router(realtime.router, prefix="/api/realtime", tags=["realtime"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Media Monitor API",
        "version": "1.0.0",
        "status": "online"
    }


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint"""
    manager = getattr(request.app.state, 'subscriptions', None)

    return {
        "status": "healthy",
        "reassembly": getattr(request.app.state, 'reassembler', None) is not None,
        "realtime": manager.get_connection_status().value if manager else None,
        "active_channels": len(manager.get_active_subscriptions()) if manager else 0,
        "environment": os.getenv('ENVIRONMENT', 'development')
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "message": str(exc),
            "path": str(request.url)
        }
    )
