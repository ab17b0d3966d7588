"""
Response envelope helpers.

Every endpoint answers with ``{"success": bool, ...}``; list endpoints add a
``pagination`` block.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Query
from fastapi.responses import JSONResponse

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100000


def success_response(
    data: Any = None,
    message: Optional[str] = None,
    status_code: int = 200,
) -> JSONResponse:
    """Build a success envelope."""
    content: Dict[str, Any] = {"success": True}
    if data is not None:
        content["data"] = data
    if message:
        content["message"] = message
    return JSONResponse(status_code=status_code, content=content)


def error_content(message: str) -> Dict[str, Any]:
    return {"success": False, "error": message}


def error_response(
    message: str,
    status_code: int = 500,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build an error envelope."""
    return JSONResponse(status_code=status_code, content=error_content(message), headers=headers)


@dataclass
class PaginationParams:
    """Normalized page and page size."""

    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def normalize(cls, page: Optional[int], limit: Optional[int]) -> "PaginationParams":
        """Clamp page to >= 1 and limit to 1..MAX_PAGE_SIZE."""
        page = page if page and page > 0 else 1
        if limit is None:
            limit = DEFAULT_PAGE_SIZE
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        return cls(page=page, limit=limit)


def get_pagination(
    page: Optional[int] = Query(None, description="Page number, starting at 1"),
    limit: Optional[int] = Query(None, description="Items per page"),
) -> PaginationParams:
    """FastAPI dependency returning clamped pagination parameters."""
    return PaginationParams.normalize(page, limit)


def paginated_response(
    data: Any,
    total: int,
    pagination: PaginationParams,
    message: Optional[str] = None,
) -> JSONResponse:
    """Build a success envelope with a pagination block."""
    content: Dict[str, Any] = {
        "success": True,
        "data": data,
        "pagination": {
            "page": pagination.page,
            "limit": pagination.limit,
            "total": total,
            "totalPages": math.ceil(total / pagination.limit) if total else 0,
        },
    }
    if message:
        content["message"] = message
    return JSONResponse(content=content)
