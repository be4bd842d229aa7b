"""
Post service: the feed and post authoring.

Design notes
------------
- The feed uses keyset pagination on ``(created_at DESC, id DESC)``.
  A page asks for one row more than it returns; the extra row only
  answers "is there another page?".  The cursor names the last row of
  the page, and the next page starts strictly after it, so posts
  created between requests never shift or duplicate items.
- Creators are resolved through the request's user ``BatchLoader``:
  a page of N posts costs one posts query and one users query.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
"""
import base64
import binascii
import logging
from datetime import datetime

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.config import settings
from postboard.errors import InvalidInput, NotFound, Unauthorized
from postboard.loaders import Loaders
from postboard.models import Post, Vote
from postboard.schemas import FieldError, PaginatedPosts, PostInput, PostTitleUpdate
from postboard.services.user_service import user_to_dict

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Cursor helpers
# ---------------------------------------------------------------------------

def encode_cursor(created_at: datetime, post_id: int) -> str:
    raw = f"{created_at.isoformat()}|{post_id}".encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, int]:
    """Inverse of ``encode_cursor``; raises ``InvalidInput`` on garbage."""
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        created_at, _, post_id = base64.urlsafe_b64decode(padded).decode().partition("|")
        return datetime.fromisoformat(created_at), int(post_id)
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise InvalidInput([FieldError(field="cursor", message="invalid cursor")])


def effective_limit(limit: int) -> int:
    return max(0, min(limit, settings.FEED_MAX_LIMIT))


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def text_snippet(text: str) -> str:
    return text[: settings.SNIPPET_LENGTH]


def _post_to_dict(post: Post, creator, viewer_id: int | None) -> dict:
    return {
        "id": post.id,
        "title": post.title,
        "text": post.text,
        "text_snippet": text_snippet(post.text),
        "score": post.score,
        "creator_id": post.creator_id,
        "creator": user_to_dict(creator, viewer_id) if creator is not None else None,
        "created_at": post.created_at,
        "updated_at": post.updated_at,
    }


async def _with_creators(
    loaders: Loaders, posts: list[Post], viewer_id: int | None
) -> list[dict]:
    creators = await loaders.user.load_many([p.creator_id for p in posts])
    return [_post_to_dict(p, c, viewer_id) for p, c in zip(posts, creators)]


async def _get_owned_post(db: AsyncSession, post_id: int, caller_id: int | None) -> Post:
    if caller_id is None:
        raise Unauthorized()
    post = await db.get(Post, post_id)
    if post is None:
        raise NotFound("post", post_id)
    if post.creator_id != caller_id:
        raise Unauthorized("not the creator of this post")
    return post


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def list_posts(
    db: AsyncSession,
    loaders: Loaders,
    limit: int = settings.FEED_DEFAULT_LIMIT,
    cursor: str | None = None,
    viewer_id: int | None = None,
) -> PaginatedPosts:
    """
    Return one page of the feed, newest first.

    At most ``FEED_MAX_LIMIT`` posts are returned whatever *limit* is.
    """
    real_limit = effective_limit(limit)

    q = select(Post).order_by(Post.created_at.desc(), Post.id.desc()).limit(real_limit + 1)
    if cursor:
        created_at, post_id = decode_cursor(cursor)
        q = q.where(
            or_(
                Post.created_at < created_at,
                and_(Post.created_at == created_at, Post.id < post_id),
            )
        )

    rows = list((await db.execute(q)).scalars().all())
    page = rows[:real_limit]

    next_cursor = encode_cursor(page[-1].created_at, page[-1].id) if page else None
    return PaginatedPosts(
        posts=await _with_creators(loaders, page, viewer_id),
        has_more=len(rows) == real_limit + 1,
        next_cursor=next_cursor,
    )


async def get_post(
    db: AsyncSession, loaders: Loaders, post_id: int, viewer_id: int | None = None
) -> dict | None:
    post = await db.get(Post, post_id)
    if post is None:
        return None
    creator = await loaders.user.load(post.creator_id)
    return _post_to_dict(post, creator, viewer_id)


async def create_post(
    db: AsyncSession, loaders: Loaders, data: PostInput, creator_id: int | None
) -> dict:
    if creator_id is None:
        raise Unauthorized()
    post = Post(title=data.title, text=data.text, creator_id=creator_id)
    db.add(post)
    await db.flush()
    logger.info("User id=%s created post id=%s", creator_id, post.id)

    creator = await loaders.user.load(creator_id)
    return _post_to_dict(post, creator, creator_id)


async def update_post(
    db: AsyncSession,
    loaders: Loaders,
    post_id: int,
    data: PostTitleUpdate,
    caller_id: int | None,
) -> dict:
    """Change the title of a post; only its creator may do so."""
    post = await _get_owned_post(db, post_id, caller_id)
    if data.title is not None:
        post.title = data.title
        await db.flush()

    creator = await loaders.user.load(post.creator_id)
    return _post_to_dict(post, creator, caller_id)


async def delete_post(db: AsyncSession, post_id: int, caller_id: int | None) -> bool:
    """Delete a post and its votes; only its creator may do so."""
    post = await _get_owned_post(db, post_id, caller_id)
    await db.execute(delete(Vote).where(Vote.post_id == post_id))
    await db.delete(post)
    await db.flush()
    logger.info("User id=%s deleted post id=%s", caller_id, post_id)
    return True
