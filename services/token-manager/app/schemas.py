"""
Pydantic models for request bodies.

Required fields are declared optional where the API reports a specific
error message for their absence; the services perform those checks.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

MAX_BATCH_IMPORT = 100
MAX_BATCH_VALIDATE = 50
MAX_BATCH_SESSIONS = 50


def _check_http_url(value: Optional[str]) -> Optional[str]:
    if value and not value.startswith(("http://", "https://")):
        raise ValueError("must be an http(s) URL")
    return value


class LoginRequest(BaseModel):
    """Credentials submitted to the login endpoint."""

    username: Optional[str] = None
    password: Optional[str] = None


class TokenCreate(BaseModel):
    """Fields accepted when creating a token record."""

    model_config = ConfigDict(extra="ignore")

    tenant_url: Optional[str] = None
    access_token: Optional[str] = None
    portal_url: Optional[str] = None
    email_note: Optional[str] = None
    auth_session: Optional[str] = None

    @field_validator("tenant_url", "portal_url")
    @classmethod
    def validate_urls(cls, value: Optional[str]) -> Optional[str]:
        return _check_http_url(value)


class TokenUpdate(BaseModel):
    """Partial update; only fields present in the request body are applied."""

    model_config = ConfigDict(extra="ignore")

    tenant_url: Optional[str] = None
    access_token: Optional[str] = None
    portal_url: Optional[str] = None
    email_note: Optional[str] = None
    ban_status: Optional[str] = None
    portal_info: Optional[str] = None
    share_info: Optional[str] = None
    is_shared: Optional[bool] = None
    auth_session: Optional[str] = None

    @field_validator("tenant_url", "portal_url")
    @classmethod
    def validate_urls(cls, value: Optional[str]) -> Optional[str]:
        return _check_http_url(value)


class BatchImportRequest(BaseModel):
    """Bulk token import; items are validated one at a time."""

    tokens: Optional[List[Any]] = None


class BatchValidateRequest(BaseModel):
    """Token ids to probe against the tenant API."""

    tokenIds: Optional[List[str]] = None


class SessionImportRequest(BaseModel):
    """A browser session cookie to turn into a token record."""

    model_config = ConfigDict(extra="ignore")

    session_token: Optional[str] = None
    email_note: Optional[str] = None


class BatchSessionImportRequest(BaseModel):
    """Several session cookies imported in one call."""

    sessions: Optional[List[Any]] = None


class CreditConsumptionRequest(BaseModel):
    """Auth session whose credit usage should be reported."""

    auth_session: Optional[str] = None
