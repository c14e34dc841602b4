from fastapi import Depends, HTTPException, status
from typing import Any, Dict
import logging

from astro_portal.dependencies.auth import get_current_user

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"

async def get_current_admin(
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    """Dependency requiring `app_metadata.role == "admin"` on the Supabase user."""
    if current_user.get("role") != ADMIN_ROLE:
        logger.warning(f"User {current_user.get('uid')} attempted an admin action")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user
