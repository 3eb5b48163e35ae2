"""
SiteWalk - Request Identity
Author attribution from request headers

Authentication is handled upstream; this service only trusts the
X-User-Id / X-User-Name headers the gateway forwards.
"""
import logging
from typing import Optional

from fastapi import Header, HTTPException, status
from pydantic import BaseModel

logger = logging.getLogger(__name__)

SYSTEM_AUTHOR = "SYSTEM"


class Author(BaseModel):
    """Who performed a request. id is None for system/anonymous callers."""
    id: Optional[int] = None
    name: str = SYSTEM_AUTHOR

    @property
    def is_system(self) -> bool:
        return self.id is None


async def get_current_author(
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> Author:
    """Read the author from headers; missing headers mean a system author."""
    user_id = None
    if x_user_id:
        try:
            user_id = int(x_user_id)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"X-User-Id must be an integer, got '{x_user_id}'"
            )
    name = (x_user_name or "").strip()[:100]
    if not name:
        name = f"user-{user_id}" if user_id is not None else SYSTEM_AUTHOR
    return Author(id=user_id, name=name)
