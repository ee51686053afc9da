"""Caller identity for HTTP requests.

The SSO gateway in front of the API authenticates the user and forwards
their directory id in x-user-id. Roles always come from the directory,
never from the request.
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from riskaccept_api.access.permissions import SYSTEM_ROLE
from riskaccept_api.db.session import get_db
from riskaccept_api.models import User
from riskaccept_api.settings import get_settings

logger = logging.getLogger(__name__)

user_id_header = APIKeyHeader(name="x-user-id", auto_error=False)
internal_key_header = APIKeyHeader(name="x-internal-key", auto_error=False)


async def get_current_user(
    user_id: Optional[str] = Security(user_id_header),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the acting user from the directory."""
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity. Provide x-user-id header.",
        )

    user = db.get(User, user_id)
    # SYSTEM is reserved for the expiry sweeper and never acts over HTTP
    if user is None or not user.is_active or user.role == SYSTEM_ROLE:
        logger.warning("Rejected unknown or inactive user", extra={"user_id": user_id})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown or inactive user",
        )
    return user


async def verify_internal_key(internal_key: Optional[str] = Security(internal_key_header)) -> bool:
    """Verify internal API key for scheduler endpoints."""
    expected = get_settings().internal_api_key
    if not internal_key or not hmac.compare_digest(internal_key, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid internal API key",
        )
    return True
