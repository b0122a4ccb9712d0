import logging
import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .database import get_db
from .models import User, UserRole

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.PIN_HASH_ROUNDS)

_serializer = URLSafeTimedSerializer(settings.SESSION_SECRET, salt="linked-session")


def hash_pin(pin: str) -> str:
    return pwd_context.hash(pin)


def verify_pin(pin: str, pin_hash: Optional[str]) -> bool:
    if not pin_hash:
        return False
    return pwd_context.verify(pin, pin_hash)


def create_session_token(user_id: uuid.UUID) -> str:
    return _serializer.dumps(str(user_id))


def read_session_token(token: str) -> Optional[uuid.UUID]:
    """User id from a session token, or None if tampered, expired or malformed."""
    try:
        value = _serializer.loads(token, max_age=settings.SESSION_MAX_AGE)
        return uuid.UUID(value)
    except SignatureExpired:
        logger.info("Expired session token")
        return None
    except (BadSignature, ValueError, TypeError):
        return None


def set_session_cookie(response: Response, user_id: uuid.UUID):
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        create_session_token(user_id),
        max_age=settings.SESSION_MAX_AGE,
        path="/",
        httponly=True,
        samesite="lax",
    )


def clear_session_cookie(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/", httponly=True, samesite="lax")


async def get_optional_user(request: Request, db: AsyncSession = Depends(get_db)) -> Optional[User]:
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        return None
    user_id = read_session_token(token)
    if user_id is None:
        return None
    return await db.get(User, user_id)


async def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN.value:
        raise HTTPException(status_code=403, detail="Forbidden")
    return user
