"""
Blog API routes.

Anyone can read published posts; sys admins see drafts and scheduled posts
and manage content.
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from survey_platform.api.schemas import CamelModel, PageParams, Pagination
from survey_platform.database import get_db
from survey_platform.middleware.auth import get_session_user, require_sys_admin
from survey_platform.models import BlogPost, User
from survey_platform.models.base import as_utc, utc_now
from survey_platform.services.slug import generate_slug, make_slug_unique

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/blog", tags=["blog"])


# Pydantic schemas
class BlogAuthor(CamelModel):
    id: UUID
    name: str
    image: Optional[str]


class BlogPostSummary(CamelModel):
    id: UUID
    title: str
    slug: str
    excerpt: Optional[str]
    tags: Optional[List[str]]
    published_at: Optional[datetime]
    created_at: datetime
    author: Optional[BlogAuthor]


class BlogPostOut(BlogPostSummary):
    content: str
    updated_at: datetime


class BlogListResponse(CamelModel):
    posts: List[BlogPostSummary]
    pagination: Pagination


class BlogPostResponse(CamelModel):
    success: bool = True
    post: BlogPostOut


class BlogPostCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    excerpt: Optional[str] = None
    content: str = Field(..., min_length=1)
    tags: List[str] = []
    published_at: Optional[datetime] = None


class BlogPostUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=1, max_length=255)
    excerpt: Optional[str] = None
    content: Optional[str] = None
    tags: Optional[List[str]] = None
    published_at: Optional[datetime] = None


# Helpers
def is_visible(post: BlogPost, now: Optional[datetime] = None) -> bool:
    """Published and not scheduled for later."""
    if post.published_at is None:
        return False
    return as_utc(post.published_at) <= (now or utc_now())


async def _slug_taken(db: AsyncSession, slug: str) -> bool:
    return (await db.scalar(select(BlogPost.id).where(BlogPost.slug == slug))) is not None


async def _load_post(db: AsyncSession, post_id: UUID) -> BlogPost:
    stmt = select(BlogPost).options(selectinload(BlogPost.author)).where(BlogPost.id == post_id)
    post = (await db.execute(stmt)).scalar_one_or_none()
    if post is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Blog post not found"
        )
    return post


def _slug_conflict() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="A post with this slug already exists"
    )


# Routes
@router.get("", response_model=BlogListResponse)
async def list_posts(
    include_unpublished: bool = Query(False, alias="includeUnpublished"),
    page: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_session_user),
):
    """
    Published posts, newest first.

    Raises:
        HTTPException: 403 when drafts are requested by a non sys admin
    """
    conditions = []
    if include_unpublished:
        if user is None or not user.is_sys_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Unauthorized to view unpublished posts"
            )
    else:
        conditions = [BlogPost.published_at.is_not(None), BlogPost.published_at <= utc_now()]

    total = await db.scalar(select(func.count(BlogPost.id)).where(*conditions))
    stmt = (
        select(BlogPost)
        .options(selectinload(BlogPost.author))
        .where(*conditions)
        .order_by(BlogPost.published_at.desc(), BlogPost.created_at.desc())
        .offset(page.offset)
        .limit(page.limit)
    )
    posts = (await db.execute(stmt)).scalars().all()

    return BlogListResponse(
        posts=[BlogPostSummary.model_validate(p) for p in posts],
        pagination=page.pagination(total or 0),
    )


@router.get("/{slug_or_id}", response_model=BlogPostResponse)
async def get_post(
    slug_or_id: str,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_session_user),
):
    """Single post by slug or id; unpublished posts are hidden from everyone but sys admins."""
    stmt = select(BlogPost).options(selectinload(BlogPost.author))
    try:
        stmt = stmt.where(BlogPost.id == UUID(slug_or_id))
    except ValueError:
        stmt = stmt.where(BlogPost.slug == slug_or_id)
    post = (await db.execute(stmt)).scalar_one_or_none()

    if post is None or (not is_visible(post) and not (user and user.is_sys_admin)):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Blog post not found"
        )
    return BlogPostResponse(post=BlogPostOut.model_validate(post))


@router.post("", response_model=BlogPostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    payload: BlogPostCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_sys_admin)
):
    """
    Create a post. Without an explicit slug one is derived from the title.

    Raises:
        HTTPException: 400 if the slug is already used
    """
    if payload.slug:
        slug = payload.slug.strip()
        if await _slug_taken(db, slug):
            raise _slug_conflict()
    else:
        base = generate_slug(payload.title) or "post"
        existing = (await db.execute(
            select(BlogPost.slug).where(BlogPost.slug.like(f"{base}%"))
        )).scalars().all()
        slug = make_slug_unique(base, existing)

    post = BlogPost(
        title=payload.title.strip(),
        slug=slug,
        excerpt=payload.excerpt.strip() if payload.excerpt else None,
        content=payload.content,
        tags=payload.tags,
        author_id=admin.id,
        published_at=payload.published_at,
    )
    db.add(post)
    await db.commit()

    logger.info(f"Blog post {post.slug} created by {admin.email}")
    return BlogPostResponse(post=BlogPostOut.model_validate(await _load_post(db, post.id)))


@router.patch("/{post_id}", response_model=BlogPostResponse)
async def update_post(
    post_id: UUID,
    payload: BlogPostUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_sys_admin)
):
    """Update a post; an explicit null publishedAt unpublishes it."""
    post = await _load_post(db, post_id)
    updates = payload.model_dump(exclude_unset=True)

    new_slug = (updates.get("slug") or "").strip()
    if new_slug and new_slug != post.slug:
        if await _slug_taken(db, new_slug):
            raise _slug_conflict()
        post.slug = new_slug
    if updates.get("title"):
        post.title = updates["title"].strip()
    if "excerpt" in updates:
        post.excerpt = updates["excerpt"].strip() if updates["excerpt"] else None
    if updates.get("content") is not None:
        post.content = updates["content"]
    if "tags" in updates:
        post.tags = updates["tags"] or []
    if "published_at" in updates:
        post.published_at = updates["published_at"]

    post.updated_at = utc_now()
    await db.commit()

    return BlogPostResponse(post=BlogPostOut.model_validate(await _load_post(db, post.id)))


@router.delete("/{post_id}")
async def delete_post(
    post_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_sys_admin)
):
    post = await _load_post(db, post_id)
    await db.delete(post)
    await db.commit()

    logger.info(f"Blog post {post_id} deleted by {admin.email}")
    return {"success": True, "message": "Blog post deleted successfully"}
