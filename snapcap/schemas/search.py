"""
SnapCap Backend: Search Schemas
=================================
"""

from typing import List, Optional

from snapcap.schemas.common import APIModel, Pagination
from snapcap.schemas.post import HashtagCount, PostOut
from snapcap.schemas.user import UserSearchResult


class UserSearchList(APIModel):
    users: List[UserSearchResult]
    pagination: Optional[Pagination] = None


class HashtagList(APIModel):
    hashtags: List[HashtagCount]


class GlobalSearchResult(APIModel):
    users: List[UserSearchResult]
    posts: List[PostOut]
    hashtags: List[HashtagCount]
