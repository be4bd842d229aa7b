"""Seed the postboard database with users, posts and votes for local development."""
import asyncio
import argparse
import random
import time
from datetime import datetime, timezone, timedelta

from postboard.database import engine, async_session, Base
from postboard.models import User, Post, Vote
from postboard.security import hash_password

TOPICS = ["python", "fastapi", "postgresql", "redis", "docker", "kubernetes",
          "react", "typescript", "graphql", "testing", "performance", "security"]

DEFAULT_PASSWORD = "password"


async def seed(small: bool = False):
    num_users = 10 if small else 50
    num_posts = 100 if small else 5000
    max_votes_per_post = 5 if small else 20

    print(f"Seeding: {num_users} users, {num_posts} posts, up to {max_votes_per_post} votes per post")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        # Every seeded user shares one password hash.
        password = hash_password(DEFAULT_PASSWORD)
        users = []
        for i in range(num_users):
            user = User(
                username=f"user_{i:04d}",
                email=f"user_{i:04d}@example.com",
                password=password,
            )
            session.add(user)
            users.append(user)
        await session.flush()
        print(f"  Created {len(users)} users (password: {DEFAULT_PASSWORD!r})")

        batch_size = 500
        total_votes = 0
        now = datetime.now(timezone.utc)
        for batch_start in range(0, num_posts, batch_size):
            batch_end = min(batch_start + batch_size, num_posts)
            for i in range(batch_start, batch_end):
                topic = random.choice(TOPICS)
                created = now - timedelta(seconds=random.randint(0, 365 * 24 * 3600))
                post = Post(
                    title=f"Post {i}: notes on {topic}",
                    text=f"Some thoughts about {topic} from post {i}. " * 10,
                    creator_id=random.choice(users).id,
                    created_at=created,
                    updated_at=created,
                )
                # Votes and the score are written together so the score
                # matches the vote rows from the start.
                voters = random.sample(users, k=random.randint(0, min(max_votes_per_post, len(users))))
                values = [random.choice((1, -1)) for _ in voters]
                post.score = sum(values)
                session.add(post)
                await session.flush()
                for voter, value in zip(voters, values):
                    session.add(Vote(user_id=voter.id, post_id=post.id, value=value))
                total_votes += len(voters)

            await session.flush()
            print(f"  Batch {batch_start}-{batch_end}: posts created")

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Users: {num_users}")
    print(f"  Posts: {num_posts}")
    print(f"  Votes: {total_votes}")


def main():
    parser = argparse.ArgumentParser(description="Seed the postboard database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (100 posts)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
