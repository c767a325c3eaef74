"""
Revenue Intelligence Engine - Acting User
Who is making the request. Authentication happens in front of this service;
the gateway forwards the authenticated identity in the X-Actor-Id header.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status


async def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Dependency - the acting user id, or None when the header is absent."""
    if x_actor_id is None:
        return None
    return x_actor_id.strip() or None


async def require_actor_id(actor_id: Optional[str] = Depends(get_actor_id)) -> str:
    """Dependency for endpoints that must attribute the change to someone."""
    if actor_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id header is required",
        )
    return actor_id
