"""FastAPI dependencies for identifying the caller."""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.inventory import User
from app.services.system_config import SystemConfig, load_system_config


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolve the caller from the X-User-Id header.

    Authentication happens upstream; this only maps the forwarded id to a
    user record.

    Raises:
        HTTPException 401 if the header is missing or malformed
        HTTPException 404 if no such user exists
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id"
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    return user


async def get_system_config(db: Session = Depends(get_db)) -> SystemConfig:
    """Settings snapshot for the current request."""
    return load_system_config(db)
