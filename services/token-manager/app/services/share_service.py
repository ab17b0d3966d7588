"""
Sharing tokens with the public pool.

Sharing hands a token to the pool in exchange for a recharge card; resetting
deactivates that card and stores the replacement the pool issues.
"""

from typing import Any, Dict

import httpx

from ..domain.entities import ShareInfo, Token, utcnow
from ..exceptions import BadRequestError, UpstreamError
from ..infrastructure.http_client import ExternalServiceError
from ..infrastructure.share_pool_client import SharePoolClient
from ..logging_config import get_logger
from ..metrics import track_share
from ..repositories.interfaces import ITokenRepository

logger = get_logger(__name__)


class ShareService:
    """
    Shares tokens to the public pool and manages their recharge cards.

    Attributes:
        tokens: Token repository
        pool_client: Public pool client
    """

    def __init__(self, tokens: ITokenRepository, pool_client: SharePoolClient) -> None:
        self.tokens = tokens
        self.pool_client = pool_client

    async def _store_share_info(self, token: Token, share_info: ShareInfo) -> Token:
        token.share_info = share_info.to_json()
        token.is_shared = True
        token.updated_at = utcnow()
        return await self.tokens.update(token)

    @staticmethod
    def _share_payload(message: str, token: Token, share_info: ShareInfo) -> Dict[str, Any]:
        return {
            "message": message,
            "recharge_card": share_info.recharge_card,
            "deactivation_code": share_info.deactivation_code,
            "share_info": token.share_info,
            "is_shared": True,
        }

    async def share_token(self, token: Token) -> Dict[str, Any]:
        """
        Share a token to the public pool.

        Already-shared tokens return their existing card. When the pool
        reports the token as a duplicate, its existing activation code is
        looked up and stored without a deactivation code.

        Raises:
            UpstreamError: If the pool fails or rejects the token
        """
        existing = token.get_share_info()
        if existing:
            if not token.is_shared:
                token.is_shared = True
                token = await self.tokens.update(token)
            return self._share_payload("Token already shared", token, existing)

        try:
            result = await self.pool_client.import_tokens(
                [
                    {
                        "tenant_url": token.tenant_url,
                        "access_token": token.access_token,
                        "portal_url": token.portal_url,
                        "email_note": token.email_note,
                    }
                ]
            )
        except (ExternalServiceError, httpx.HTTPError) as e:
            track_share("share", False)
            logger.error(f"Share pool import failed for token {token.id}: {e}")
            raise UpstreamError("Failed to share token to public pool")

        errors = result.get("errors") or []
        if not result.get("success"):
            track_share("share", False)
            raise UpstreamError(", ".join(map(str, errors)) or "Failed to share token")

        if (result.get("skipped") or 0) > 0:
            return await self._recover_existing_card(token)

        if errors:
            track_share("share", False)
            raise UpstreamError(", ".join(map(str, errors)))

        pairs = result.get("email_card_pairs") or []
        if not pairs or not pairs[0].get("recharge_card"):
            track_share("share", False)
            raise UpstreamError("Public pool did not return a recharge card")

        share_info = ShareInfo(
            recharge_card=pairs[0]["recharge_card"],
            deactivation_code=pairs[0].get("deactivation_code"),
        )
        token = await self._store_share_info(token, share_info)
        track_share("share", True)
        logger.info("Token shared", extra={"extra_fields": {"token_id": token.id}})
        return self._share_payload("Token shared successfully", token, share_info)

    async def _recover_existing_card(self, token: Token) -> Dict[str, Any]:
        try:
            search = await self.pool_client.search_by_email_notes([token.email_note or ""])
        except (ExternalServiceError, httpx.HTTPError) as e:
            track_share("share", False)
            logger.error(f"Share pool search failed for token {token.id}: {e}")
            raise UpstreamError("Failed to search existing token in public pool")

        matches = search.get("data") or []
        activation_code = matches[0].get("activation_code") if matches else None
        if not search.get("success") or not activation_code:
            track_share("share", False)
            raise UpstreamError("Token exists in public pool but activation code not found")

        share_info = ShareInfo(recharge_card=activation_code, deactivation_code=None)
        token = await self._store_share_info(token, share_info)
        track_share("share", True)
        return self._share_payload(
            "Token was already shared, retrieved existing activation code", token, share_info
        )

    async def reset_recharge_card(self, token: Token) -> Dict[str, Any]:
        """
        Deactivate the token's recharge card and store the replacement.

        Raises:
            BadRequestError: If the token has no card or no deactivation code
            UpstreamError: If the pool refuses the reset
        """
        share_info = token.get_share_info()
        if not share_info or not share_info.deactivation_code:
            raise BadRequestError("Token is not shared")

        try:
            result = await self.pool_client.deactivate_card(
                token.email_note or "", share_info.deactivation_code
            )
        except (ExternalServiceError, httpx.HTTPError) as e:
            track_share("reset", False)
            logger.error(f"Recharge card reset failed for token {token.id}: {e}")
            raise UpstreamError("Failed to reset recharge card")

        data = result.get("data") or {}
        new_card = data.get("new_recharge_card")
        if not result.get("success") or not new_card:
            track_share("reset", False)
            raise UpstreamError("Failed to reset recharge card")

        old_card = data.get("old_recharge_card", share_info.recharge_card)
        share_info.recharge_card = new_card
        token = await self._store_share_info(token, share_info)
        track_share("reset", True)
        return {
            "message": "Recharge card reset successfully",
            "old_recharge_card": old_card,
            "new_recharge_card": new_card,
            "share_info": token.share_info,
        }
