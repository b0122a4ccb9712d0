import logging
import uuid
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select, update, delete, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .models import User, Link, UserRole, UserStatus, utcnow
from .security import hash_pin

logger = logging.getLogger(__name__)


class UsernameTakenError(Exception):
    """Raised when a username is already held by another account (case-insensitive)."""


# User CRUD
async def get_user_by_id(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    return await db.get(User, user_id)

async def get_user_by_phone(db: AsyncSession, phone: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.phone == phone))
    return result.scalar_one_or_none()

async def get_user_by_username(db: AsyncSession, username: str) -> Optional[User]:
    result = await db.execute(select(User).where(func.lower(User.username) == username.lower()).limit(1))
    return result.scalar_one_or_none()

async def get_user_by_external_id(db: AsyncSession, external_id: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.external_id == external_id))
    return result.scalar_one_or_none()

async def _ensure_username_free(db: AsyncSession, username: str, user_id: Optional[uuid.UUID] = None):
    owner = await get_user_by_username(db, username)
    if owner and owner.id != user_id:
        raise UsernameTakenError(username)

async def _initial_role(db: AsyncSession) -> str:
    # The first account ever created administers the rest
    result = await db.execute(select(func.count()).select_from(User))
    return UserRole.ADMIN.value if result.scalar_one() == 0 else UserRole.USER.value

async def create_user_with_phone(
    db: AsyncSession,
    username: str,
    display_name: str,
    phone: str,
    pin: str,
    email: Optional[str] = None,
    external_id: Optional[str] = None,
    pfp_url: Optional[str] = None,
    account_address: Optional[str] = None,
) -> User:
    user = User(
        external_id=external_id,
        phone=phone,
        email=email,
        username=username,
        display_name=display_name,
        pfp_url=pfp_url,
        profile_picture=pfp_url,
        account_address=account_address,
        pin_hash=hash_pin(pin),
        failed_pin_attempts=0,
        status=UserStatus.ACTIVE.value,
        role=await _initial_role(db),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info(f"Created user {user.id} ({user.username}) with role {user.role}")
    return user

async def _apply(db: AsyncSession, user: User, values: Dict[str, object]) -> User:
    for key, value in values.items():
        setattr(user, key, value)
    user.updated_at = utcnow()
    await db.commit()
    await db.refresh(user)
    return user

async def get_or_create_user_by_external_id(
    db: AsyncSession,
    external_id: str,
    username: Optional[str] = None,
    display_name: Optional[str] = None,
    pfp_url: Optional[str] = None,
    account_address: Optional[str] = None,
) -> User:
    """Resolve an identity-provider user to a local account.

    Matches on the external id first, then adopts an existing account with the
    same username, and only then creates a new user. Empty fields in the
    payload never overwrite stored values.
    """
    profile = {
        "name": display_name,
        "pfp_url": pfp_url,
        "account_address": account_address,
    }
    changes = {key: value for key, value in profile.items() if value}

    existing = await get_user_by_external_id(db, external_id)
    if existing:
        if username:
            await _ensure_username_free(db, username, existing.id)
            changes["username"] = username
        return await _apply(db, existing, changes)

    if username:
        by_username = await get_user_by_username(db, username)
        if by_username:
            changes["external_id"] = external_id
            logger.info(f"Linked external id {external_id} to existing user {by_username.id}")
            return await _apply(db, by_username, changes)

    user = User(
        external_id=external_id,
        username=username or None,
        name=display_name or None,
        display_name=display_name or None,
        pfp_url=pfp_url or None,
        profile_picture=pfp_url or None,
        account_address=account_address or None,
        status=UserStatus.ACTIVE.value,
        role=await _initial_role(db),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info(f"Created user {user.id} from external id {external_id} with role {user.role}")
    return user

async def link_account_address(
    db: AsyncSession,
    user: User,
    account_address: str,
    external_id: Optional[str] = None,
    username: Optional[str] = None,
    name: Optional[str] = None,
    pfp_url: Optional[str] = None,
) -> User:
    changes = {"account_address": account_address}
    optional = {"external_id": external_id, "username": username, "name": name, "pfp_url": pfp_url}
    changes.update({key: value for key, value in optional.items() if value})
    if username:
        await _ensure_username_free(db, username, user.id)
    logger.info(f"Linked account address to user {user.id}")
    return await _apply(db, user, changes)

async def increment_failed_attempts(db: AsyncSession, user: User) -> bool:
    """Record a wrong PIN. Returns True when this attempt locked the account."""
    attempts = user.failed_pin_attempts + 1
    should_lock = attempts >= settings.MAX_FAILED_PIN_ATTEMPTS
    changes: Dict[str, object] = {"failed_pin_attempts": attempts}
    if should_lock:
        changes["locked_at"] = utcnow()
    await _apply(db, user, changes)
    return should_lock

async def reset_failed_attempts(db: AsyncSession, user: User) -> User:
    return await _apply(db, user, {"failed_pin_attempts": 0})

async def set_user_pin(db: AsyncSession, user: User, pin: str) -> User:
    return await _apply(db, user, {"pin_hash": hash_pin(pin), "failed_pin_attempts": 0})

async def unlock_user(db: AsyncSession, user: User) -> User:
    logger.info(f"Unlocked user {user.id}")
    return await _apply(db, user, {"locked_at": None, "failed_pin_attempts": 0})

async def update_user_status(db: AsyncSession, user: User, status: UserStatus) -> User:
    logger.info(f"Updated status of user {user.id} to {status.value}")
    return await _apply(db, user, {"status": status.value})

# Link CRUD
async def get_link_by_id(db: AsyncSession, link_id: uuid.UUID) -> Optional[Link]:
    result = await db.execute(select(Link).where(Link.id == link_id))
    return result.scalar_one_or_none()

async def get_links_by_owner(db: AsyncSession, owner_id: uuid.UUID) -> Sequence[Link]:
    result = await db.execute(
        select(Link).where(Link.owner_id == owner_id).order_by(Link.position.asc(), Link.created_at.desc())
    )
    return result.scalars().all()

async def get_public_links_by_owner(db: AsyncSession, owner_id: uuid.UUID) -> Sequence[Link]:
    result = await db.execute(
        select(Link)
        .where(Link.owner_id == owner_id, Link.is_public.is_(True))
        .order_by(Link.position.asc(), Link.created_at.desc())
    )
    return result.scalars().all()

async def create_link(db: AsyncSession, link: Link) -> Link:
    result = await db.execute(select(func.max(Link.position)).where(Link.owner_id == link.owner_id))
    max_position = result.scalar_one_or_none()
    link.position = 0 if max_position is None else max_position + 1

    db.add(link)
    await db.commit()
    await db.refresh(link)
    logger.info(f"Created link {link.id} for user {link.owner_id} at position {link.position}")
    return link

async def update_link(db: AsyncSession, link: Link, values: Dict[str, object]) -> Link:
    for key, value in values.items():
        setattr(link, key, value)
    link.updated_at = utcnow()
    await db.commit()
    await db.refresh(link)
    return link

async def delete_link(db: AsyncSession, link_id: uuid.UUID, owner_id: uuid.UUID) -> bool:
    result = await db.execute(delete(Link).where(Link.id == link_id, Link.owner_id == owner_id))
    await db.commit()
    return result.rowcount > 0

async def reorder_links(db: AsyncSession, owner_id: uuid.UUID, link_ids: List[uuid.UUID]):
    # Ids that belong to someone else match no row and are skipped
    now = utcnow()
    for position, link_id in enumerate(link_ids):
        await db.execute(
            update(Link)
            .where(Link.id == link_id, Link.owner_id == owner_id)
            .values(position=position, updated_at=now)
        )
    await db.commit()
    logger.info(f"Reordered {len(link_ids)} links for user {owner_id}")

async def increment_link_clicks(db: AsyncSession, link_id: uuid.UUID):
    await db.execute(
        update(Link)
        .where(Link.id == link_id)
        .values(click_count=Link.click_count + 1)
    )
    await db.commit()

async def get_user_link_stats(db: AsyncSession, owner_id: uuid.UUID) -> Dict[str, int]:
    result = await db.execute(
        select(
            func.count(Link.id),
            func.coalesce(func.sum(case((Link.is_public.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(Link.click_count), 0),
        ).where(Link.owner_id == owner_id)
    )
    total_links, public_links, total_clicks = result.one()
    return {
        "total_links": int(total_links),
        "public_links": int(public_links),
        "total_clicks": int(total_clicks),
    }
