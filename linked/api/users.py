import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response

from ..models import User
from ..schemas import MeResponse, UserOut
from ..security import get_optional_user, clear_session_cookie

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/me", response_model=MeResponse)
async def me(response: Response, user: Optional[User] = Depends(get_optional_user)):
    if user is None:
        # Stale or forged session: drop it so the client stops sending it
        clear_session_cookie(response)
        return MeResponse(user=None)
    return MeResponse(user=UserOut.model_validate(user))
