"""
Authentication Middleware

Provides Supabase JWT authentication for protected endpoints.
Uses Supabase client library to verify tokens.
"""

import logging
from fastapi import Header, HTTPException, Query, status
from typing import Optional
from supabase import create_client, Client

from core.config import Config

logger = logging.getLogger(__name__)

# Initialize Supabase client with service role key for admin operations
_supabase_client: Optional[Client] = None


def get_supabase_admin() -> Client:
    """Get or create Supabase admin client (singleton)"""
    global _supabase_client

    if _supabase_client is None:
        credentials = Config.get_supabase_credentials()

        if not credentials['url'] or not credentials['key']:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        _supabase_client = create_client(credentials['url'], credentials['key'])
        logger.info("✅ Supabase admin client initialized")

    return _supabase_client


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_token(token: str) -> str:
    """
    Resolve a Supabase access token to its user id

    Raises:
        HTTPException: If the token is invalid
    """
    try:
        supabase = get_supabase_admin()
        user_response = supabase.auth.get_user(token)

        if not user_response or not user_response.user:
            logger.warning("🔒 Invalid token - no user found")
            raise _unauthorized("Invalid authentication token")

        user_id = user_response.user.id
        logger.debug(f"✅ JWT validated successfully for user: {user_id}")
        return user_id

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Error verifying JWT: {str(e)}")
        raise _unauthorized("Invalid authentication token")


async def verify_supabase_jwt(authorization: Optional[str] = Header(None)) -> str:
    """
    Verify Supabase JWT token from Authorization header

    Args:
        authorization: Authorization header value (Bearer TOKEN)

    Returns:
        The user_id extracted from the JWT token
    """
    if not authorization:
        logger.warning("🔒 API request without Authorization header")
        raise _unauthorized("Missing Authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        logger.warning("🔒 Invalid Authorization format")
        raise _unauthorized("Invalid Authorization header format. Expected: Bearer <token>")

    return verify_token(parts[1])


async def verify_query_token(token: Optional[str] = Query(None)) -> str:
    """
    Verify a token passed as a query parameter

    EventSource doesn't support custom headers, so SSE endpoints take the
    token in the URL instead.
    """
    if not token:
        logger.warning("🔒 SSE request without token")
        raise _unauthorized("Missing authentication token")

    return verify_token(token)
