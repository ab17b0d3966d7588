"""
Token management service.

Implements create/read/update/delete, search, statistics, bulk import and
the status checks that keep each record's ``ban_status`` and
``portal_info`` current.
"""

import json
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from ..domain.entities import BanState, Token, User, build_ban_status, utcnow
from ..exceptions import (
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    TokenValidationError,
    UpstreamError,
)
from ..infrastructure.augment_client import AugmentClient
from ..infrastructure.http_client import ExternalServiceError
from ..infrastructure.portal_client import PortalClient
from ..logging_config import get_logger
from ..metrics import track_token_validation
from ..repositories.interfaces import ITokenRepository
from ..responses import PaginationParams
from ..schemas import MAX_BATCH_IMPORT, MAX_BATCH_VALIDATE, TokenCreate, TokenUpdate

logger = get_logger(__name__)

REJECTED_STATUSES = (401, 403)


def format_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic error into ``field: message`` pairs."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return ", ".join(parts)


@dataclass
class BatchImportResult:
    """Outcome of a bulk import; failures do not abort the batch."""

    success: List[Token]
    errors: List[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": len(self.success),
            "failed": len(self.errors),
            "success": [token.to_dict() for token in self.success],
            "errors": self.errors,
        }

    @property
    def message(self) -> str:
        return f"{len(self.success)} tokens imported, {len(self.errors)} failed."


class TokenService:
    """
    Business operations on token records.

    Attributes:
        tokens: Token repository
        augment_client: Tenant API client used for validation
        portal_client: Billing portal client used for refresh
    """

    def __init__(
        self,
        tokens: ITokenRepository,
        augment_client: AugmentClient,
        portal_client: PortalClient,
    ) -> None:
        self.tokens = tokens
        self.augment_client = augment_client
        self.portal_client = portal_client

    # ==================== ACCESS ====================

    async def get_token(self, token_id: str) -> Optional[Token]:
        return await self.tokens.get(token_id)

    async def get_accessible_token(
        self, token_id: str, user: User, denied_message: str = "Access denied"
    ) -> Token:
        """
        Load a token the user may act on.

        Raises:
            NotFoundError: If the token does not exist
            ForbiddenError: If a non-admin does not own the token
        """
        token = await self.tokens.get(token_id)
        if token is None:
            raise NotFoundError("Token not found")
        if not token.can_be_accessed_by(user):
            raise ForbiddenError(denied_message)
        return token

    # ==================== CRUD ====================

    async def create_token(self, data: TokenCreate, user_id: str) -> Token:
        """
        Create a token record owned by ``user_id``.

        Raises:
            BadRequestError: If no access token is given
        """
        if not data.access_token or not data.access_token.strip():
            raise BadRequestError("Access token is required")

        now = utcnow()
        token = Token(
            id=str(uuid.uuid4()),
            access_token=data.access_token.strip(),
            created_by=user_id,
            tenant_url=data.tenant_url or "",
            portal_url=data.portal_url or None,
            email_note=data.email_note or None,
            ban_status=build_ban_status(BanState.NORMAL, "Initial state"),
            portal_info="{}",
            auth_session=data.auth_session or None,
            created_at=now,
            updated_at=now,
        )
        created = await self.tokens.create(token)
        logger.info(
            "Token created",
            extra={"extra_fields": {"token_id": created.id, "created_by": user_id}},
        )
        return created

    async def list_tokens(
        self,
        user: User,
        pagination: PaginationParams,
        search: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Tuple[List[Token], int]:
        """
        List tokens visible to ``user``, newest first.

        Non-admins only see their own tokens; admins may filter by owner.
        """
        owner_id = created_by if user.is_admin else user.id
        search = search.strip() if search else None
        return await self.tokens.find(
            owner_id=owner_id or None,
            search=search or None,
            offset=pagination.offset,
            limit=pagination.limit,
        )

    async def update_token(self, token: Token, updates: TokenUpdate) -> Token:
        """Apply the fields present in ``updates``; absent fields are kept."""
        changes = updates.model_dump(exclude_unset=True)
        if "access_token" in changes and not (changes["access_token"] or "").strip():
            raise BadRequestError("Access token cannot be empty")
        if "tenant_url" in changes and changes["tenant_url"] is None:
            changes["tenant_url"] = ""
        for name, value in changes.items():
            if name == "is_shared":
                value = bool(value)
            setattr(token, name, value)
        token.updated_at = utcnow()
        return await self.tokens.update(token)

    async def delete_token(self, token: Token) -> None:
        if not await self.tokens.delete(token.id):
            raise NotFoundError("Token not found")
        logger.info("Token deleted", extra={"extra_fields": {"token_id": token.id}})

    async def get_stats(self, user: User) -> Dict[str, int]:
        """Counts of total, shared, normal and banned tokens visible to ``user``."""
        tokens, total = await self.tokens.find(owner_id=None if user.is_admin else user.id)
        shared = sum(1 for token in tokens if token.is_shared)
        normal = sum(1 for token in tokens if token.is_normal)
        return {"total": total, "shared": shared, "normal": normal, "banned": total - normal}

    # ==================== BULK IMPORT ====================

    async def batch_import(self, items: Optional[List[Any]], user_id: str) -> BatchImportResult:
        """
        Import up to MAX_BATCH_IMPORT tokens, one at a time.

        Raises:
            BadRequestError: If the batch itself is missing, empty or too large
        """
        if items is None:
            raise BadRequestError("Tokens array is required")
        if len(items) == 0:
            raise BadRequestError("At least one token is required")
        if len(items) > MAX_BATCH_IMPORT:
            raise BadRequestError(f"Maximum {MAX_BATCH_IMPORT} tokens allowed per batch")

        result = BatchImportResult(success=[], errors=[])
        for index, item in enumerate(items):
            try:
                if not isinstance(item, dict):
                    raise BadRequestError("Token entry must be an object")
                data = TokenCreate.model_validate(item)
                result.success.append(await self.create_token(data, user_id))
            except ValidationError as e:
                result.errors.append(
                    {"index": index, "data": item, "error": format_validation_error(e)}
                )
            except BadRequestError as e:
                result.errors.append({"index": index, "data": item, "error": e.message})

        logger.info(
            "Batch import finished",
            extra={
                "extra_fields": {
                    "imported": len(result.success),
                    "failed": len(result.errors),
                    "user_id": user_id,
                }
            },
        )
        return result

    # ==================== STATUS ====================

    async def validate_token_status(self, token: Token) -> Tuple[Token, bool]:
        """
        Probe the tenant API and record the verdict in ``ban_status``.

        Returns:
            Tuple of (updated token, is_valid)

        Raises:
            TokenValidationError: If the tenant gave no verdict
        """
        if not token.tenant_url:
            raise TokenValidationError("Token has no tenant URL")

        try:
            status_code = await self.augment_client.check_access_token(
                token.tenant_url, token.access_token
            )
        except httpx.HTTPError as e:
            track_token_validation("error")
            raise TokenValidationError(f"Tenant API unreachable: {e}")

        if 200 <= status_code < 300:
            is_valid = True
            token.ban_status = build_ban_status(BanState.NORMAL, "Validated against tenant API")
        elif status_code in REJECTED_STATUSES:
            is_valid = False
            token.ban_status = build_ban_status(
                BanState.SUSPENDED, f"Token rejected by tenant (HTTP {status_code})"
            )
        else:
            track_token_validation("error")
            raise TokenValidationError(f"Tenant API answered HTTP {status_code}")

        track_token_validation("valid" if is_valid else "invalid")
        token.updated_at = utcnow()
        return await self.tokens.update(token), is_valid

    async def validate_tokens_batch(
        self, token_ids: Optional[List[str]], user: User
    ) -> List[Dict[str, Any]]:
        """
        Validate several tokens.

        Raises:
            BadRequestError: If the id list is missing, empty or too large
            ForbiddenError: If a non-admin includes tokens they do not own
        """
        if token_ids is None:
            raise BadRequestError("tokenIds array is required")
        if len(token_ids) == 0:
            raise BadRequestError("At least one token ID is required")
        if len(token_ids) > MAX_BATCH_VALIDATE:
            raise BadRequestError(
                f"Maximum {MAX_BATCH_VALIDATE} tokens can be validated at once"
            )

        tokens = {token_id: await self.tokens.get(token_id) for token_id in token_ids}
        if not user.is_admin and any(
            token is not None and not token.is_owned_by(user) for token in tokens.values()
        ):
            raise ForbiddenError("Access denied to some tokens")

        results: List[Dict[str, Any]] = []
        for token_id in token_ids:
            token = tokens[token_id]
            if token is None:
                results.append({"tokenId": token_id, "isValid": False, "error": "Token not found"})
                continue
            try:
                updated, is_valid = await self.validate_token_status(token)
                results.append(
                    {"tokenId": token_id, "isValid": is_valid, "token": updated.to_dict()}
                )
            except TokenValidationError as e:
                results.append({"tokenId": token_id, "isValid": False, "error": e.message})
        return results

    async def refresh_token_info(self, token: Token) -> Token:
        """
        Refresh ``portal_info`` from the billing portal.

        Tokens without a portal URL are returned unchanged.

        Raises:
            UpstreamError: If the portal cannot be read
        """
        if not token.portal_url:
            return token

        try:
            info = await self.portal_client.get_portal_info(token.portal_url)
        except ExternalServiceError as e:
            raise UpstreamError(
                f"Failed to refresh portal info: {e.message}", upstream_status=e.status_code
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to refresh portal info: {e}")

        token.portal_info = json.dumps(info)
        token.updated_at = utcnow()
        return await self.tokens.update(token)
