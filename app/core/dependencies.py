from typing import Optional

from fastapi import Header, HTTPException, status

from app.core.database import SessionLocal


def get_db():
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_owner_id(
    x_owner_id: Optional[str] = Header(None, alias="X-Owner-Id"),
) -> str:
    """
    Owner id of the signed-in user, set by the upstream auth layer.
    Every query is scoped by it; records of other owners are simply not found.
    """
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing owner identity",
        )
    return x_owner_id.strip()
