import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User, UserStatus
from ..schemas import (
    RegisterRequest,
    PhoneLoginRequest,
    SetPinRequest,
    ContextAuthRequest,
    PendingUserData,
    UserOut,
    UserResponse,
    LoginStatusResponse,
    SuccessResponse,
)
from .. import crud
from ..security import verify_pin, set_session_cookie, clear_session_cookie
from ..services.rate_limiter import RateLimiter
from ..utils import normalize_phone, is_valid_phone, is_valid_pin, is_valid_username
from ..config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _required(value: Optional[str], message: str) -> str:
    if not value or not value.strip():
        raise HTTPException(status_code=400, detail=message)
    return value.strip()


def _check_pin(pin: Optional[str]) -> str:
    pin = _required(pin, "PIN is required")
    if not is_valid_pin(pin):
        raise HTTPException(status_code=400, detail="PIN must be exactly 4 digits")
    return pin


def _ensure_not_banned(user: User):
    if user.status == UserStatus.BANNED.value:
        raise HTTPException(status_code=403, detail="Account is banned")


def _login(response: Response, user: User) -> UserResponse:
    _ensure_not_banned(user)
    set_session_cookie(response, user.id)
    return UserResponse(user=UserOut.model_validate(user))


def _conflict(exc: Exception) -> HTTPException:
    if isinstance(exc, crud.UsernameTakenError):
        return HTTPException(status_code=409, detail="Username already taken")
    return HTTPException(status_code=409, detail="Account details already belong to another user")


async def _link_pending(db: AsyncSession, user: User, pending: Optional[PendingUserData]) -> User:
    if not pending or not pending.account_address:
        return user
    try:
        return await crud.link_account_address(
            db,
            user,
            pending.account_address,
            external_id=pending.renaissance_id,
            username=pending.username,
            name=pending.display_name,
            pfp_url=pending.pfp_url,
        )
    except (crud.UsernameTakenError, IntegrityError) as exc:
        await db.rollback()
        raise _conflict(exc)


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, response: Response, db: AsyncSession = Depends(get_db)):
    username = _required(body.username, "Username is required")
    if not is_valid_username(username):
        raise HTTPException(status_code=400, detail="Username can only contain letters, numbers, and underscores")
    name = _required(body.name, "Name is required")
    phone = normalize_phone(_required(body.phone, "Phone number is required"))
    pin = _check_pin(body.pin)
    if not is_valid_phone(phone):
        raise HTTPException(status_code=400, detail="Invalid phone number format")

    if await crud.get_user_by_phone(db, phone):
        raise HTTPException(status_code=409, detail="Phone number already registered")
    if await crud.get_user_by_username(db, username):
        raise HTTPException(status_code=409, detail="Username already taken")

    pending = body.pending_user_data or PendingUserData()
    try:
        user = await crud.create_user_with_phone(
            db,
            username=username,
            display_name=name,
            phone=phone,
            pin=pin,
            email=(body.email or "").strip() or None,
            external_id=pending.renaissance_id,
            pfp_url=pending.pfp_url,
            account_address=pending.account_address,
        )
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Phone number or username already registered")
    return _login(response, user)


@router.post(
    "/phone-login",
    response_model=None,
    dependencies=[Depends(RateLimiter())],
)
async def phone_login(body: PhoneLoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    """Two-step login.

    Without a PIN the caller learns whether to prompt for one or to set one
    first. With a PIN the account is verified and a session is issued.
    """
    phone = normalize_phone(_required(body.phone, "Phone number is required"))

    user = await crud.get_user_by_phone(db, phone)
    if not user:
        raise HTTPException(status_code=404, detail="No account found with this phone number")
    _ensure_not_banned(user)
    if user.is_locked:
        raise HTTPException(status_code=423, detail="Account is locked. Please contact an administrator.")

    if not body.pin or not user.has_pin:
        return LoginStatusResponse(
            user_id=user.id,
            has_pin=user.has_pin,
            requires_pin=user.has_pin,
            needs_set_pin=not user.has_pin,
            display_name=None if user.has_pin else (user.display_name or user.username),
        )

    if not verify_pin(body.pin, user.pin_hash):
        locked = await crud.increment_failed_attempts(db, user)
        if locked:
            logger.warning(f"Locked user {user.id} after too many failed PIN attempts")
            raise HTTPException(
                status_code=423,
                detail="Account has been locked due to too many failed attempts. Please contact an administrator.",
            )
        remaining = settings.MAX_FAILED_PIN_ATTEMPTS - user.failed_pin_attempts
        logger.info(f"Invalid PIN for user {user.id}, {remaining} attempts remaining")
        return JSONResponse(
            status_code=401,
            content={
                "detail": f"Invalid PIN. {remaining} attempt{'s' if remaining != 1 else ''} remaining.",
                "attempts_remaining": remaining,
            },
        )

    user = await crud.reset_failed_attempts(db, user)
    user = await _link_pending(db, user, body.pending_user_data)
    logger.info(f"User {user.id} logged in")
    return _login(response, user)


@router.post("/set-pin", response_model=UserResponse)
async def set_pin(body: SetPinRequest, response: Response, db: AsyncSession = Depends(get_db)):
    phone = normalize_phone(_required(body.phone, "Phone number is required"))
    pin = _check_pin(body.pin)

    user = await crud.get_user_by_phone(db, phone)
    if not user:
        raise HTTPException(status_code=404, detail="No account found with this phone number")
    if user.has_pin:
        raise HTTPException(status_code=400, detail="This account already has a PIN. Use the login flow instead.")

    user = await crud.set_user_pin(db, user, pin)
    user = await _link_pending(db, user, body.pending_user_data)
    logger.info(f"PIN set for user {user.id}")
    return _login(response, user)


@router.post("/logout", response_model=SuccessResponse)
async def logout(response: Response):
    clear_session_cookie(response)
    return SuccessResponse()


@router.post("/context", response_model=UserResponse)
async def context_login(body: ContextAuthRequest, response: Response, db: AsyncSession = Depends(get_db)):
    """Sign in a user vouched for by the host identity provider."""
    external_id = _required(body.renaissance_user_id, "renaissance_user_id is required")
    details = body.user
    try:
        user = await crud.get_or_create_user_by_external_id(
            db,
            external_id,
            username=details.username if details else None,
            display_name=details.display_name if details else None,
            pfp_url=details.pfp_url if details else None,
            account_address=details.public_address if details else None,
        )
    except (crud.UsernameTakenError, IntegrityError) as exc:
        await db.rollback()
        raise _conflict(exc)
    logger.info(f"User {user.id} authenticated from external id {external_id}")
    return _login(response, user)
