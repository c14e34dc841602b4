# astro_portal/dependencies/auth.py
from fastapi import Depends, HTTPException, status, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional, Dict, Any
import logging

import httpx
from supabase import AsyncClient

from astro_portal.database.supabase_client import get_supabase
from astro_portal.core.logging_config import get_logger, get_request_id, log_error

logger = get_logger(__name__)

# HTTP Bearer scheme for extracting tokens from Authorization header
# auto_error=False allows us to handle errors manually for better control
security = HTTPBearer(
    auto_error=False,
    scheme_name="Bearer",
    description="Supabase access token (without 'Bearer' prefix)"
)

async def verify_supabase_token(token: str, client: AsyncClient) -> Dict[str, Any]:
    """
    Resolve a Supabase access token to the user it belongs to.

    Returns:
        Dict[str, Any]: `uid`, `email`, `role` (from app_metadata) and the raw `app_metadata`

    Raises:
        ValueError: If the token is rejected or the auth service is unreachable
    """
    try:
        response = await client.auth.get_user(token)
    except httpx.HTTPError as e:
        logger.error(f"Supabase auth unreachable: {str(e)}")
        raise ValueError("Authentication service temporarily unavailable.")
    except Exception as e:
        logger.warning(f"Supabase rejected access token: {str(e)}")
        raise ValueError("Invalid or expired authentication token.")

    user = getattr(response, "user", None)
    if user is None:
        raise ValueError("Invalid authentication token.")

    app_metadata = dict(user.app_metadata or {})
    logger.debug(f"Successfully verified token for user: {user.id}")
    return {
        "uid": str(user.id),
        "email": user.email,
        "role": app_metadata.get("role"),
        "app_metadata": app_metadata,
    }

async def get_token_from_header(
    authorization: Optional[str] = Header(None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[str]:
    """Extract the bearer token, falling back to parsing the raw header."""
    if credentials and credentials.scheme.lower() == "bearer":
        return credentials.credentials

    if authorization and authorization.startswith("Bearer "):
        return authorization.replace("Bearer ", "").strip()

    logger.debug("No token found in Authorization header")
    return None

async def get_current_user(
    token: Optional[str] = Depends(get_token_from_header),
    client: AsyncClient = Depends(get_supabase),
) -> Dict[str, Any]:
    """
    FastAPI dependency that validates the Supabase access token and returns the user.

    Raises:
        HTTPException: 401 if authentication fails
    """
    request_id = get_request_id()
    headers = {"WWW-Authenticate": "Bearer", "X-Request-ID": request_id} if request_id else {"WWW-Authenticate": "Bearer"}

    if not token or not token.strip():
        logger.warning(
            "No authentication token provided",
            extra={"extra_fields": {"request_id": request_id, "auth_error": "missing_token"}}
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed: No token provided.",
            headers=headers,
        )

    try:
        return await verify_supabase_token(token, client)
    except ValueError as e:
        log_error(
            logger,
            e,
            context={"request_id": request_id, "auth_error": "token_verification_failed"},
            level=logging.WARNING
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Authentication failed: {str(e)}",
            headers=headers,
        )

async def get_optional_user(
    token: Optional[str] = Depends(get_token_from_header),
    client: AsyncClient = Depends(get_supabase),
) -> Optional[Dict[str, Any]]:
    """The user when a valid token is sent, None for anonymous callers."""
    if not token:
        return None

    try:
        return await verify_supabase_token(token, client)
    except ValueError:
        return None
