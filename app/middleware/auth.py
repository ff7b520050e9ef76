"""Cookie-session authentication dependencies.

Google sign-in stores the user id in Starlette's signed session cookie
(``SessionMiddleware``). Routes declare what they need:

  - ``current_user``: the signed-in ``User`` or ``None`` (guests allowed)
  - ``require_user``: the signed-in ``User``, otherwise HTTP 401
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from app.models import User
from app.services.storage import Storage, get_storage

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user_id"


def login_user(request: Request, user: User) -> None:
    request.session.clear()
    request.session[SESSION_USER_KEY] = user.id


def logout_user(request: Request) -> None:
    request.session.clear()


def current_user(
    request: Request,
    storage: Storage = Depends(get_storage),
) -> Optional[User]:
    """Resolve the signed-in user from the session cookie, or ``None``."""
    user_id = request.session.get(SESSION_USER_KEY)
    if not user_id:
        return None
    user = storage.get_user(user_id)
    if user is None:
        # Cookie outlived its account (e.g. in-memory backend restarted)
        logger.info(f"Dropping session for unknown user {user_id}")
        request.session.pop(SESSION_USER_KEY, None)
    return user


def require_user(user: Optional[User] = Depends(current_user)) -> User:
    """Like ``current_user`` but raises 401 for guests."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user
