"""
Authentication endpoints.

Login issues an opaque session id that clients send back as
``Authorization: Bearer <sessionId>``.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from ..dependencies import AuthContext, get_auth_context, get_auth_service
from ..domain.entities import isoformat
from ..logging_config import get_logger
from ..rate_limiter import check_auth_rate_limit
from ..responses import success_response
from ..schemas import LoginRequest
from ..services.auth_service import AuthService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post(
    "/login",
    summary="Log in with configured credentials",
    dependencies=[Depends(check_auth_rate_limit)],
)
async def login(
    request: Request,
    credentials: Optional[LoginRequest] = None,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Authenticate a user and open a session.

    Args:
        request: FastAPI request object for IP/user-agent capture
        credentials: Username and password

    Returns:
        Session token, user summary and expiry timestamp
    """
    credentials = credentials or LoginRequest()
    result = await auth_service.login(
        username=credentials.username,
        password=credentials.password,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return success_response(
        {
            "token": result.session.session_id,
            "user": result.user.to_public_dict(),
            "expiresAt": isoformat(result.session.expires_at),
        },
        "Login successful",
    )


@router.post("/logout", summary="Close the current session")
async def logout(
    context: AuthContext = Depends(get_auth_context),
    auth_service: AuthService = Depends(get_auth_service),
):
    await auth_service.logout(context.session.session_id)
    return success_response(message="Logout successful")


@router.get("/validate", summary="Check the current session")
async def validate_session(context: AuthContext = Depends(get_auth_context)):
    """Return the user behind the bearer session; fails with 401 if it is not valid."""
    return success_response(
        {
            "valid": True,
            "user": context.user.to_public_dict(),
            "session": {
                "sessionId": context.session.session_id,
                "expiresAt": isoformat(context.session.expires_at),
            },
        }
    )
