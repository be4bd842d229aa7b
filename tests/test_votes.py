"""
Vote tests — the per-(user, post) state machine and the score invariant.

After any sequence of votes and retractions, each (user, post) pair has
at most one vote row and ``Post.score`` equals the sum of the post's
vote values.  The randomized test checks that after every single step.
"""
import random

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.errors import NotFound, Unauthorized
from postboard.models import Post, User, Vote
from postboard.services import vote_service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _create_user(db: AsyncSession, username: str) -> User:
    user = User(username=username, email=f"{username}@example.com", password="x")
    db.add(user)
    await db.flush()
    return user


async def _create_post(db: AsyncSession, creator: User) -> Post:
    post = Post(title="Votable", text="Vote on me", creator_id=creator.id)
    db.add(post)
    await db.flush()
    return post


async def _stored_score(db: AsyncSession, post_id: int) -> int:
    return (await db.execute(select(Post.score).where(Post.id == post_id))).scalar_one()


async def _vote_sum(db: AsyncSession, post_id: int) -> int:
    q = select(func.coalesce(func.sum(Vote.value), 0)).where(Vote.post_id == post_id)
    return (await db.execute(q)).scalar_one()


async def _vote_rows(db: AsyncSession, user_id: int, post_id: int) -> int:
    q = select(func.count()).select_from(Vote).where(Vote.user_id == user_id, Vote.post_id == post_id)
    return (await db.execute(q)).scalar_one()


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_upvote_flip_and_repeat(db_session: AsyncSession):
    author = await _create_user(db_session, "alice")
    post = await _create_post(db_session, author)
    assert await _stored_score(db_session, post.id) == 0

    assert await vote_service.cast_vote(db_session, post.id, 1, author.id) is True
    assert await _stored_score(db_session, post.id) == 1

    await vote_service.cast_vote(db_session, post.id, -1, author.id)
    assert await _stored_score(db_session, post.id) == -1

    await vote_service.cast_vote(db_session, post.id, -1, author.id)
    assert await _stored_score(db_session, post.id) == -1
    assert await _vote_rows(db_session, author.id, post.id) == 1


@pytest.mark.asyncio
async def test_repeated_upvote_is_idempotent(db_session: AsyncSession):
    author = await _create_user(db_session, "bob")
    post = await _create_post(db_session, author)

    for _ in range(3):
        await vote_service.cast_vote(db_session, post.id, 1, author.id)

    assert await _stored_score(db_session, post.id) == 1
    assert await _vote_rows(db_session, author.id, post.id) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("raw, expected", [(1, 1), (-1, -1), (0, 1), (5, 1), (-7, 1)])
async def test_any_value_other_than_minus_one_is_an_upvote(db_session: AsyncSession, raw: int, expected: int):
    author = await _create_user(db_session, "carol")
    post = await _create_post(db_session, author)

    await vote_service.cast_vote(db_session, post.id, raw, author.id)

    assert await _stored_score(db_session, post.id) == expected


@pytest.mark.asyncio
async def test_votes_from_several_users_add_up(db_session: AsyncSession):
    author = await _create_user(db_session, "dave")
    post = await _create_post(db_session, author)
    voters = [await _create_user(db_session, f"voter{i}") for i in range(4)]

    for voter, value in zip(voters, [1, 1, 1, -1]):
        await vote_service.cast_vote(db_session, post.id, value, voter.id)

    assert await _stored_score(db_session, post.id) == 2


@pytest.mark.asyncio
async def test_retract_vote(db_session: AsyncSession):
    author = await _create_user(db_session, "erin")
    post = await _create_post(db_session, author)

    await vote_service.cast_vote(db_session, post.id, -1, author.id)
    assert await vote_service.retract_vote(db_session, post.id, author.id) is True
    assert await _stored_score(db_session, post.id) == 0
    assert await _vote_rows(db_session, author.id, post.id) == 0

    # Nothing left to retract.
    assert await vote_service.retract_vote(db_session, post.id, author.id) is True
    assert await _stored_score(db_session, post.id) == 0


@pytest.mark.asyncio
async def test_vote_without_voter_is_unauthorized(db_session: AsyncSession):
    author = await _create_user(db_session, "frank")
    post = await _create_post(db_session, author)

    with pytest.raises(Unauthorized):
        await vote_service.cast_vote(db_session, post.id, 1, None)
    with pytest.raises(Unauthorized):
        await vote_service.retract_vote(db_session, post.id, None)

    assert await _stored_score(db_session, post.id) == 0
    assert await _vote_sum(db_session, post.id) == 0


@pytest.mark.asyncio
async def test_vote_on_missing_post_is_not_found(db_session: AsyncSession):
    user = await _create_user(db_session, "grace")
    with pytest.raises(NotFound):
        await vote_service.cast_vote(db_session, 99999, 1, user.id)


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [1, 7, 42])
async def test_score_matches_votes_after_random_sequences(db_session: AsyncSession, seed: int):
    rng = random.Random(seed)
    author = await _create_user(db_session, "heidi")
    posts = [await _create_post(db_session, author) for _ in range(3)]
    users = [await _create_user(db_session, f"rnd{i}") for i in range(5)]

    for _ in range(120):
        user = rng.choice(users)
        post = rng.choice(posts)
        if rng.random() < 0.2:
            await vote_service.retract_vote(db_session, post.id, user.id)
        else:
            await vote_service.cast_vote(db_session, post.id, rng.choice([1, -1, 0, 3]), user.id)

        assert await _vote_rows(db_session, user.id, post.id) <= 1
        assert await _stored_score(db_session, post.id) == await _vote_sum(db_session, post.id)

    for post in posts:
        assert await _stored_score(db_session, post.id) == await _vote_sum(db_session, post.id)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_vote_scenario_through_api(async_client: AsyncClient, register_user):
    _, headers = await register_user("scenario")
    post_id = (await async_client.post(
        "/api/v1/posts", json={"title": "P", "text": "body"}, headers=headers
    )).json()["id"]

    async def score() -> int:
        return (await async_client.get(f"/api/v1/posts/{post_id}")).json()["score"]

    assert await score() == 0

    resp = await async_client.post(f"/api/v1/posts/{post_id}/vote", json={"value": 1}, headers=headers)
    assert resp.status_code == 200
    assert resp.json() is True
    assert await score() == 1

    await async_client.post(f"/api/v1/posts/{post_id}/vote", json={"value": -1}, headers=headers)
    assert await score() == -1

    await async_client.post(f"/api/v1/posts/{post_id}/vote", json={"value": -1}, headers=headers)
    assert await score() == -1

    resp = await async_client.delete(f"/api/v1/posts/{post_id}/vote", headers=headers)
    assert resp.status_code == 200
    assert await score() == 0


@pytest.mark.asyncio
async def test_vote_requires_authentication(async_client: AsyncClient, register_user):
    _, headers = await register_user("owner")
    post_id = (await async_client.post(
        "/api/v1/posts", json={"title": "P", "text": "body"}, headers=headers
    )).json()["id"]

    resp = await async_client.post(f"/api/v1/posts/{post_id}/vote", json={"value": 1})
    assert resp.status_code == 401

    resp = await async_client.post(
        f"/api/v1/posts/{post_id}/vote",
        json={"value": 1},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert resp.status_code == 401

    assert (await async_client.get(f"/api/v1/posts/{post_id}")).json()["score"] == 0


@pytest.mark.asyncio
async def test_vote_on_missing_post_returns_404(async_client: AsyncClient, register_user):
    _, headers = await register_user("lost")
    resp = await async_client.post("/api/v1/posts/99999/vote", json={"value": 1}, headers=headers)
    assert resp.status_code == 404
