import uuid
from typing import Iterator

from fastapi import Header, HTTPException

from .database import SessionLocal


def get_db() -> Iterator:
    with SessionLocal() as db:
        yield db


def parse_user_id(raw_user_id: str | None) -> str | None:
    if not raw_user_id:
        return None
    value = raw_user_id.strip()
    if not value:
        return None
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise HTTPException(status_code=400, detail="X-User-Id must be a valid UUID")


def current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    # Identity is verified upstream; the gateway forwards the caller's id.
    user_id = parse_user_id(x_user_id)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id
