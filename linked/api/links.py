import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Link, User
from ..schemas import (
    LinkCreate,
    LinkUpdate,
    LinkOut,
    LinkResponse,
    LinkListResponse,
    LinkStats,
    ReorderRequest,
    SuccessResponse,
)
from .. import crud
from ..security import get_current_user
from ..utils import is_http_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/links", tags=["links"])


async def _owned_link(db: AsyncSession, link_id: uuid.UUID, user: User) -> Link:
    link = await crud.get_link_by_id(db, link_id)
    if not link:
        raise HTTPException(status_code=404, detail="Link not found")
    if link.owner_id != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return link


@router.get("", response_model=LinkListResponse)
async def list_links(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    links = await crud.get_links_by_owner(db, user.id)
    return LinkListResponse(links=[LinkOut.model_validate(link) for link in links])


@router.post("", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def create_link(
    link_in: LinkCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not link_in.url:
        raise HTTPException(status_code=400, detail="URL is required")
    if not is_http_url(link_in.url):
        raise HTTPException(status_code=400, detail="Invalid URL format")

    new_link = Link(
        owner_id=user.id,
        url=link_in.url,
        title=link_in.title,
        description=link_in.description,
        image_url=link_in.image_url,
        favicon=link_in.favicon,
        site_name=link_in.site_name,
        is_public=True if link_in.is_public is None else link_in.is_public,
        click_count=0,
    )
    created = await crud.create_link(db, new_link)
    return LinkResponse(link=LinkOut.model_validate(created))


@router.get("/stats", response_model=LinkStats)
async def link_stats(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return LinkStats(**await crud.get_user_link_stats(db, user.id))


@router.post("/reorder", response_model=SuccessResponse)
async def reorder_links(
    body: ReorderRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if body.link_ids is None:
        raise HTTPException(status_code=400, detail="link_ids array is required")
    await crud.reorder_links(db, user.id, body.link_ids)
    return SuccessResponse()


@router.get("/{link_id}", response_model=LinkResponse)
async def get_link(link_id: uuid.UUID, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    link = await _owned_link(db, link_id, user)
    return LinkResponse(link=LinkOut.model_validate(link))


@router.put("/{link_id}", response_model=LinkResponse)
async def update_link(
    link_id: uuid.UUID,
    link_in: LinkUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    values = link_in.model_dump(exclude_unset=True)
    if "url" in values and not is_http_url(values["url"]):
        raise HTTPException(status_code=400, detail="Invalid URL format")
    if values.get("is_public", True) is None:
        del values["is_public"]

    link = await _owned_link(db, link_id, user)
    updated = await crud.update_link(db, link, values)
    logger.info(f"Updated link {link_id} for user {user.id}")
    return LinkResponse(link=LinkOut.model_validate(updated))


@router.delete("/{link_id}", response_model=SuccessResponse)
async def delete_link(link_id: uuid.UUID, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await _owned_link(db, link_id, user)
    if not await crud.delete_link(db, link_id, user.id):
        raise HTTPException(status_code=404, detail="Link not found")
    logger.info(f"Deleted link {link_id} for user {user.id}")
    return SuccessResponse()
