"""Shared route dependencies."""

from fastapi import Header, HTTPException


def get_actor_id(x_user_id: int = Header(..., alias="X-User-Id")) -> int:
    """Acting user, supplied by the authenticating gateway in front of this service."""
    if x_user_id <= 0:
        raise HTTPException(status_code=422, detail="X-User-Id must be a positive integer")
    return x_user_id
