"""
Shared service dependencies

Services are built once in the application lifespan and stored on
app.state; routes reach them through these FastAPI dependencies.
"""

from fastapi import HTTPException, Request, status

from core.reassembler import ChunkReassembler
from core.realtime.subscription_manager import SubscriptionManager
from core.session_store import SessionStore


def _require(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Service not configured: {name}"
        )
    return service


def get_reassembler(request: Request) -> ChunkReassembler:
    return _require(request, 'reassembler')


def get_session_store(request: Request) -> SessionStore:
    return _require(request, 'sessions')


def get_subscription_manager(request: Request) -> SubscriptionManager:
    return _require(request, 'subscriptions')
