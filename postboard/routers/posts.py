from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.database import get_db
from postboard.dependencies import FeedParams, get_current_user_id, get_loaders
from postboard.loaders import Loaders
from postboard.schemas import PaginatedPosts, PostInput, PostResponse, PostTitleUpdate, VoteInput
from postboard.services import post_service, vote_service

router = APIRouter(prefix="/api/v1/posts", tags=["posts"])

@router.get("", response_model=PaginatedPosts)
async def list_posts(
    params: FeedParams = Depends(),
    db: AsyncSession = Depends(get_db),
    loaders: Loaders = Depends(get_loaders),
    viewer_id: int | None = Depends(get_current_user_id),
):
    return await post_service.list_posts(db, loaders, params.limit, params.cursor, viewer_id)

@router.get("/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: int,
    db: AsyncSession = Depends(get_db),
    loaders: Loaders = Depends(get_loaders),
    viewer_id: int | None = Depends(get_current_user_id),
):
    post = await post_service.get_post(db, loaders, post_id, viewer_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post

@router.post("", status_code=201, response_model=PostResponse)
async def create_post(
    data: PostInput,
    db: AsyncSession = Depends(get_db),
    loaders: Loaders = Depends(get_loaders),
    user_id: int | None = Depends(get_current_user_id),
):
    return await post_service.create_post(db, loaders, data, user_id)

@router.patch("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: int,
    data: PostTitleUpdate,
    db: AsyncSession = Depends(get_db),
    loaders: Loaders = Depends(get_loaders),
    user_id: int | None = Depends(get_current_user_id),
):
    return await post_service.update_post(db, loaders, post_id, data, user_id)

@router.delete("/{post_id}", status_code=204)
async def delete_post(
    post_id: int,
    db: AsyncSession = Depends(get_db),
    user_id: int | None = Depends(get_current_user_id),
):
    await post_service.delete_post(db, post_id, user_id)

@router.post("/{post_id}/vote", response_model=bool)
async def vote(
    post_id: int,
    data: VoteInput,
    db: AsyncSession = Depends(get_db),
    user_id: int | None = Depends(get_current_user_id),
):
    return await vote_service.cast_vote(db, post_id, data.value, user_id)

@router.delete("/{post_id}/vote", response_model=bool)
async def retract_vote(
    post_id: int,
    db: AsyncSession = Depends(get_db),
    user_id: int | None = Depends(get_current_user_id),
):
    return await vote_service.retract_vote(db, post_id, user_id)
