from typing import Optional

from fastapi import Header, Request

from ..core.exceptions import UnauthorizedError


def get_reviewer_id(x_reviewer_id: Optional[str] = Header(default=None)) -> str:
    """Reviewer identity forwarded by the authenticating proxy"""
    if not x_reviewer_id or not x_reviewer_id.strip():
        raise UnauthorizedError("Reviewer identity required")
    return x_reviewer_id.strip()


def get_connection_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None
