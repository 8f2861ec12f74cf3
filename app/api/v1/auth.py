from fastapi import APIRouter, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import logging

from app.api.deps import Services, get_services
from app.core.exceptions import AuthenticationError, AuthorizationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

security = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: Services = Depends(get_services),
) -> str:
    """
    Verify the Firebase ID token from ``Authorization: Bearer <token>``
    and return the user id it was issued for.
    """
    if not credentials:
        raise AuthenticationError("Missing or invalid authorization header")

    user_id = services.identity.verify(credentials.credentials)
    logger.debug(f"Authenticated user: {user_id}")
    return user_id


def require_same_user(authenticated_user_id: str, requested_user_id: str):
    """The token's subject may only act on its own user id."""
    if authenticated_user_id != requested_user_id:
        logger.warning(
            f"User {authenticated_user_id} attempted to act on behalf of {requested_user_id}"
        )
        raise AuthorizationError("Token does not match the requested user")


@router.get("/verify")
async def verify_token(user_id: str = Depends(get_current_user_id)):
    """Verify the current user's token."""
    return {
        "valid": True,
        "user_id": user_id
    }
