"""
Session import endpoints.

Turn browser session cookies from auth.augmentcode.com into token records.
"""

from fastapi import APIRouter, Depends, status

from ..dependencies import get_current_user, get_session_import_service
from ..domain.entities import User
from ..rate_limiter import check_api_rate_limit
from ..responses import success_response
from ..schemas import BatchSessionImportRequest, SessionImportRequest
from ..services.session_import import SessionImportService

router = APIRouter(
    prefix="/api/tokens",
    tags=["Session Import"],
    dependencies=[Depends(check_api_rate_limit)],
)


@router.post("/import-session", summary="Import token from a session cookie")
async def import_session(
    body: SessionImportRequest,
    user: User = Depends(get_current_user),
    import_service: SessionImportService = Depends(get_session_import_service),
):
    """
    Run the OAuth flow with a session cookie and store the resulting token.

    Returns:
        The created token (201)
    """
    token = await import_service.import_session(body.session_token, body.email_note, user.id)
    return success_response(
        token.to_dict(),
        "Token imported successfully from session",
        status_code=status.HTTP_201_CREATED,
    )


@router.post("/batch-import-sessions", summary="Import tokens from many session cookies")
async def batch_import_sessions(
    body: BatchSessionImportRequest,
    user: User = Depends(get_current_user),
    import_service: SessionImportService = Depends(get_session_import_service),
):
    result = await import_service.batch_import(body.sessions, user.id)
    return success_response(
        result.to_dict(), f"Batch session import completed. {result.message}"
    )
