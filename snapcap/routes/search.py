"""
SnapCap Backend: Search Routes
================================

Every endpoint except trending and hashtag listings requires `q` of at
least two characters.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from snapcap.database import get_db_session
from snapcap.dependencies import PageParams, optional_user, page_params
from snapcap.models.user import User
from snapcap.schemas.common import Envelope, ok
from snapcap.schemas.post import PostList
from snapcap.schemas.search import GlobalSearchResult, HashtagList, UserSearchList
from snapcap.services.post_service import post_service
from snapcap.services.search_service import TRENDING_LIMIT, search_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/search", tags=["Search"])


async def _post_list(db: AsyncSession, page, viewer: Optional[User]) -> PostList:
    return PostList(posts=await post_service.to_out(db, page.items, viewer), pagination=page.pagination)


@router.get("/users", response_model=Envelope[UserSearchList])
async def search_users(
    q: str = Query(default=""),
    paging: PageParams = Depends(page_params),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    page = await search_service.users(db, q, viewer, paging.page, paging.limit)
    return ok(UserSearchList(users=page.items, pagination=page.pagination))


@router.get("/posts", response_model=Envelope[PostList])
async def search_posts(
    q: str = Query(default=""),
    paging: PageParams = Depends(page_params),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    page = await search_service.posts(db, q, paging.page, paging.limit)
    return ok(await _post_list(db, page, viewer))


@router.get("/hashtags", response_model=Envelope[HashtagList])
async def search_hashtags(
    q: str = Query(default=""),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(HashtagList(hashtags=await search_service.hashtags(db, q, limit)))


@router.get("/trending/hashtags", response_model=Envelope[HashtagList], summary="Most used hashtags of the last 7 days")
async def trending_hashtags(
    limit: int = Query(default=TRENDING_LIMIT, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(HashtagList(hashtags=await search_service.trending_hashtags(db, limit)))


@router.get("/hashtag/{tag}", response_model=Envelope[PostList])
async def hashtag_posts(
    tag: str,
    paging: PageParams = Depends(page_params),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    page = await search_service.hashtag_posts(db, tag, paging.page, paging.limit)
    return ok(await _post_list(db, page, viewer))


@router.get("/global", response_model=Envelope[GlobalSearchResult])
async def global_search(
    q: str = Query(default=""),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
):
    found = await search_service.global_search(db, q, viewer)
    return ok(
        GlobalSearchResult(
            users=found["users"],
            posts=await post_service.to_out(db, found["posts"], viewer),
            hashtags=found["hashtags"],
        )
    )
