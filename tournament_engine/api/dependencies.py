from typing import Optional

from fastapi import Header
from sqlalchemy.orm import Session
from tournament_engine.core.database import SessionLocal

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

async def get_current_user_id(x_user_id: Optional[int] = Header(default=None)) -> Optional[int]:
    """
    Acting user for audited operations. Authentication happens upstream;
    the gateway forwards the caller's id in the X-User-Id header.
    """
    return x_user_id
