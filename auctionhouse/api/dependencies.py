from typing import Optional

from fastapi import Header, Request

from auctionhouse.core.errors import AuctionError
from auctionhouse.core.service import AuctionService


class Unauthorized(AuctionError):
    kind = "Unauthorized"
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


def current_user_get(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity, set by the authenticating proxy in front of the API."""
    if not x_user_id or not x_user_id.strip():
        raise Unauthorized()
    return x_user_id.strip()


def service_get(request: Request) -> AuctionService:
    return request.app.state.service
