"""Shared FastAPI dependencies: database sessions and the caller identity."""
from __future__ import annotations

from typing import Generator, Optional

from fastapi import Header
from sqlalchemy.orm import Session

from core.db import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a database session.

    The session is the request's unit of work: committed once after the
    route returns, rolled back if anything raised.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_readonly_db() -> Generator[Session, None, None]:
    """FastAPI dependency that provides a read-only database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


class HeaderUserProvider:
    """Caller identity taken from the X-User-Id header set by the auth proxy."""

    def __init__(self, user_id: Optional[str]) -> None:
        self._user_id = user_id

    def current_user_id(self) -> Optional[str]:
        return self._user_id or None


def get_user_provider(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> HeaderUserProvider:
    return HeaderUserProvider(x_user_id)


__all__ = ["get_db", "get_readonly_db", "get_user_provider", "HeaderUserProvider"]
