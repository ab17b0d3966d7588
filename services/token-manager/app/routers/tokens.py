"""
Token management endpoints.

Non-admin users only see and modify tokens they created.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from ..dependencies import get_current_user, get_share_service, get_token_service
from ..domain.entities import User
from ..logging_config import get_logger
from ..rate_limiter import check_api_rate_limit
from ..responses import PaginationParams, get_pagination, paginated_response, success_response
from ..schemas import BatchImportRequest, BatchValidateRequest, TokenCreate, TokenUpdate
from ..services.share_service import ShareService
from ..services.token_service import TokenService

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/tokens",
    tags=["Tokens"],
    dependencies=[Depends(check_api_rate_limit)],
)

PERMISSION_DENIED = "Permission denied"


@router.get("", summary="List tokens")
async def list_tokens(
    pagination: PaginationParams = Depends(get_pagination),
    search: Optional[str] = Query(None, description="Match email note, tenant or portal URL"),
    created_by: Optional[str] = Query(None, description="Owner filter (admins only)"),
    user: User = Depends(get_current_user),
    token_service: TokenService = Depends(get_token_service),
):
    """
    List tokens newest first, optionally filtered by a search term.

    Returns:
        Paginated token list
    """
    tokens, total = await token_service.list_tokens(user, pagination, search, created_by)
    return paginated_response([token.to_dict() for token in tokens], total, pagination)


@router.get("/stats", summary="Token statistics")
async def get_token_stats(
    user: User = Depends(get_current_user),
    token_service: TokenService = Depends(get_token_service),
):
    return success_response(await token_service.get_stats(user))


@router.post("", summary="Create token")
async def create_token(
    token_data: TokenCreate,
    user: User = Depends(get_current_user),
    token_service: TokenService = Depends(get_token_service),
):
    token = await token_service.create_token(token_data, user.id)
    return success_response(
        token.to_dict(), "Token created successfully", status_code=status.HTTP_201_CREATED
    )


@router.post("/batch-import", summary="Import many tokens")
async def batch_import_tokens(
    body: BatchImportRequest,
    user: User = Depends(get_current_user),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Import up to 100 tokens. Invalid entries are reported, not fatal.

    Returns:
        Counts plus the created tokens and per-item errors
    """
    result = await token_service.batch_import(body.tokens, user.id)
    return success_response(result.to_dict(), f"Batch import completed. {result.message}")


@router.post("/batch-validate", summary="Validate many tokens")
async def batch_validate_tokens(
    body: BatchValidateRequest,
    user: User = Depends(get_current_user),
    token_service: TokenService = Depends(get_token_service),
):
    results = await token_service.validate_tokens_batch(body.tokenIds, user)
    summary = {
        "total": len(results),
        "valid": sum(1 for item in results if item["isValid"]),
        "invalid": sum(1 for item in results if not item["isValid"]),
        "errors": sum(1 for item in results if item.get("error")),
    }
    return success_response(
        {"results": results, "summary": summary}, "Batch validation completed"
    )


@router.get("/{token_id}", summary="Get token")
async def get_token(
    token_id: str,
    user: User = Depends(get_current_user),
    token_service: TokenService = Depends(get_token_service),
):
    token = await token_service.get_accessible_token(token_id, user)
    return success_response(token.to_dict())


@router.put("/{token_id}", summary="Update token")
async def update_token(
    token_id: str,
    updates: TokenUpdate,
    user: User = Depends(get_current_user),
    token_service: TokenService = Depends(get_token_service),
):
    """Apply a partial update; fields missing from the body are left unchanged."""
    token = await token_service.get_accessible_token(token_id, user)
    updated = await token_service.update_token(token, updates)
    return success_response(updated.to_dict(), "Token updated successfully")


@router.delete("/{token_id}", summary="Delete token")
async def delete_token(
    token_id: str,
    user: User = Depends(get_current_user),
    token_service: TokenService = Depends(get_token_service),
):
    token = await token_service.get_accessible_token(token_id, user)
    await token_service.delete_token(token)
    return success_response(message="Token deleted successfully")


@router.post("/{token_id}/validate", summary="Validate token against its tenant")
async def validate_token_status(
    token_id: str,
    user: User = Depends(get_current_user),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Probe the tenant API and record the result in ``ban_status``.

    Returns:
        The updated token plus a top-level ``valid`` flag
    """
    token = await token_service.get_accessible_token(token_id, user)
    updated, is_valid = await token_service.validate_token_status(token)
    return JSONResponse(
        content={
            "success": True,
            "data": updated.to_dict(),
            "valid": is_valid,
            "message": "Token is valid" if is_valid else "Token is no longer valid, status updated",
        }
    )


@router.post("/{token_id}/refresh", summary="Refresh portal information")
async def refresh_token(
    token_id: str,
    user: User = Depends(get_current_user),
    token_service: TokenService = Depends(get_token_service),
):
    token = await token_service.get_accessible_token(token_id, user)
    refreshed = await token_service.refresh_token_info(token)
    return success_response(refreshed.to_dict(), "Token information refreshed")


@router.post("/{token_id}/share", summary="Share token to the public pool")
async def share_token(
    token_id: str,
    user: User = Depends(get_current_user),
    token_service: TokenService = Depends(get_token_service),
    share_service: ShareService = Depends(get_share_service),
):
    token = await token_service.get_accessible_token(token_id, user, PERMISSION_DENIED)
    return success_response(await share_service.share_token(token))


@router.post("/{token_id}/reset-card", summary="Reset the token's recharge card")
async def reset_recharge_card(
    token_id: str,
    user: User = Depends(get_current_user),
    token_service: TokenService = Depends(get_token_service),
    share_service: ShareService = Depends(get_share_service),
):
    token = await token_service.get_accessible_token(token_id, user, PERMISSION_DENIED)
    return success_response(await share_service.reset_recharge_card(token))
