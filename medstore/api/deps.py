# FILE: medstore/api/deps.py
from __future__ import annotations

from typing import Generator

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from medstore.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_owner_id(x_owner_id: int = Header(..., alias="X-Owner-Id")) -> int:
    """Pharmacy account every query and write is scoped to."""
    if x_owner_id <= 0:
        raise HTTPException(status_code=400, detail="Invalid X-Owner-Id header")
    return x_owner_id
