"""
Vote service: one vote per (user, post) and the post's running score.

A user's vote on a post is in one of three states: none, up (+1) or
down (-1).  Transitions and their effect on ``Post.score``:

    none -> up/down     insert vote            score += value
    up <-> down         update vote            score += 2 * value
    same value again    nothing                score unchanged
    up/down -> none     delete vote (retract)  score -= old value

Each call locks the post row first (``SELECT ... FOR UPDATE``), so two
concurrent votes on the same post are applied one after the other, and
the score itself is only ever moved by ``score = score + delta`` in the
database.  Everything happens inside the caller's transaction.
"""
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.errors import NotFound, Unauthorized
from postboard.models import Post, Vote

logger = logging.getLogger(__name__)

UPVOTE = 1
DOWNVOTE = -1


def normalize_vote(value: int) -> int:
    """Anything that is not an explicit downvote counts as an upvote."""
    return DOWNVOTE if value == DOWNVOTE else UPVOTE


async def _lock_post(db: AsyncSession, post_id: int) -> Post:
    q = (
        select(Post)
        .where(Post.id == post_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    post = (await db.execute(q)).scalar_one_or_none()
    if post is None:
        raise NotFound("post", post_id)
    return post


async def _current_vote(db: AsyncSession, user_id: int, post_id: int) -> Vote | None:
    q = select(Vote).where(Vote.user_id == user_id, Vote.post_id == post_id)
    return (await db.execute(q)).scalar_one_or_none()


async def _adjust_score(db: AsyncSession, post_id: int, delta: int) -> None:
    await db.execute(
        update(Post).where(Post.id == post_id).values(score=Post.score + delta)
    )


async def cast_vote(db: AsyncSession, post_id: int, value: int, voter_id: int | None) -> bool:
    if voter_id is None:
        raise Unauthorized()
    value = normalize_vote(value)

    await _lock_post(db, post_id)
    vote = await _current_vote(db, voter_id, post_id)

    if vote is None:
        db.add(Vote(user_id=voter_id, post_id=post_id, value=value))
        delta = value
    elif vote.value == value:
        return True
    else:
        vote.value = value
        delta = 2 * value

    await db.flush()
    await _adjust_score(db, post_id, delta)
    logger.debug("User id=%s voted %+d on post id=%s", voter_id, value, post_id)
    return True


async def retract_vote(db: AsyncSession, post_id: int, voter_id: int | None) -> bool:
    if voter_id is None:
        raise Unauthorized()

    await _lock_post(db, post_id)
    vote = await _current_vote(db, voter_id, post_id)
    if vote is None:
        return True

    delta = -vote.value
    await db.delete(vote)
    await db.flush()
    await _adjust_score(db, post_id, delta)
    return True

