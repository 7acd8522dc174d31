"""
Realtime Routes

Introspection of shared realtime channels and an SSE stream of newly
monitored content.
"""

import asyncio
import json
import logging
from dataclasses import asdict
from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from app.dependencies import get_subscription_manager
from app.middleware.auth import verify_query_token, verify_supabase_jwt
from core.content_feed import ContentFeed
from core.realtime.subscription_manager import SubscriptionManager

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_SECONDS = 15


@router.get("/subscriptions")
async def list_subscriptions(
    user_id: str = Depends(verify_supabase_jwt),
    manager: SubscriptionManager = Depends(get_subscription_manager)
):
    """Show every live channel with its subscriber count and configs"""
    active = manager.get_active_subscriptions()

    return {
        "connection_status": manager.get_connection_status().value,
        "channels": {
            key: {
                "count": info["count"],
                "configs": [asdict(config) for config in info["configs"]],
            }
            for key, info in active.items()
        }
    }


@router.get("/feed")
async def stream_content_feed(
    request: Request,
    user_id: str = Depends(verify_query_token),
    manager: SubscriptionManager = Depends(get_subscription_manager)
):
    """
    Stream new alerts, transcriptions, press clippings and news as SSE

    Every open stream shares the same realtime channel.
    """
    logger.info(f"📡 Starting content feed stream for user {user_id}")

    async def event_stream():
        async with ContentFeed(manager) as feed:
            yield {
                "event": "ping",
                "data": json.dumps({"message": "SSE connection established"})
            }

            while True:
                if await request.is_disconnected():
                    logger.info(f"📡 Content feed client disconnected ({user_id})")
                    break

                try:
                    event = await asyncio.wait_for(feed.queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield {
                        "event": "ping",
                        "data": json.dumps({"status": manager.get_connection_status().value})
                    }
                    continue

                yield {
                    "event": "notification",
                    "data": json.dumps(event, default=str)
                }

    return EventSourceResponse(event_stream())
