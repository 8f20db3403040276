from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlmodel import Session

from .db import get_session
from .models import User


def get_current_user(
    request: Request, session: Session = Depends(get_session)
) -> Optional[User]:
    # The login flow that writes user_id into the session lives outside this service.
    user_id = request.session.get("user_id")
    if not user_id:
        return None
    return session.get(User, user_id)


def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if not user:
        raise HTTPException(status_code=401)
    return user
