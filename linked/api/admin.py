import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from .. import crud
from ..schemas import StatusUpdate, UserOut, UserResponse
from ..security import require_admin

router = APIRouter(prefix="/admin", tags=["admin"])


async def _get_user_or_404(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await crud.get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.post("/users/{user_id}/unlock", response_model=UserResponse)
async def unlock_user(user_id: uuid.UUID, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    user = await _get_user_or_404(db, user_id)
    user = await crud.unlock_user(db, user)
    return UserResponse(user=UserOut.model_validate(user))


@router.put("/users/{user_id}/status", response_model=UserResponse)
async def set_user_status(
    user_id: uuid.UUID,
    body: StatusUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await _get_user_or_404(db, user_id)
    user = await crud.update_user_status(db, user, body.status)
    return UserResponse(user=UserOut.model_validate(user))
