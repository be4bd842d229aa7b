"""
Request-scoped batch loaders.

A ``BatchLoader`` turns many ``load(key)`` calls into one call of its
batch function.  Every key requested before the loader's pending batch
is flushed (the flush runs on the next turn of the event loop) ends up
in the same batch, so resolving the creators of a whole feed page costs
a single ``SELECT ... WHERE id IN (...)``.

Loaders cache what they resolve for their whole lifetime and must never
outlive the request that created them: build a fresh ``Loaders`` per
request (see ``postboard.dependencies.get_loaders``).
"""
import asyncio
import logging
from typing import Awaitable, Callable, Generic, Hashable, Sequence, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.models import User

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

BatchFn = Callable[[list[K]], Awaitable[Sequence[V | None]]]


class BatchLoader(Generic[K, V]):
    """
    Coalescing, caching loader around *batch_fn*.

    *batch_fn* receives a list of distinct keys and must return a
    sequence of the same length, in the same order, with ``None`` for
    keys that do not exist.  If it raises, every load of that batch
    fails with the same exception and the keys are evicted so a later
    load can retry.
    """

    def __init__(self, batch_fn: BatchFn, name: str = "loader") -> None:
        self._batch_fn = batch_fn
        self.name = name
        self._cache: dict[K, asyncio.Future] = {}
        self._queue: list[tuple[K, asyncio.Future]] = []
        self._dispatch_scheduled = False
        self._tasks: set[asyncio.Task] = set()
        self.batch_count = 0

    def load(self, key: K) -> "asyncio.Future[V | None]":
        """Return an awaitable resolving to the value for *key* (or None)."""
        future = self._cache.get(key)
        if future is not None:
            return future

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._cache[key] = future
        self._queue.append((key, future))
        if not self._dispatch_scheduled:
            self._dispatch_scheduled = True
            loop.call_soon(self._dispatch)
        return future

    async def load_many(self, keys: Sequence[K]) -> list[V | None]:
        return list(await asyncio.gather(*(self.load(key) for key in keys)))

    def prime(self, key: K, value: V) -> None:
        """Seed the cache with an already known value; no-op if cached."""
        if key in self._cache:
            return
        future = asyncio.get_running_loop().create_future()
        future.set_result(value)
        self._cache[key] = future

    def clear(self, key: K) -> None:
        self._cache.pop(key, None)

    def clear_all(self) -> None:
        self._cache.clear()

    # ------------------------------------------------------------------
    # Batch dispatch
    # ------------------------------------------------------------------

    def _dispatch(self) -> None:
        batch, self._queue = self._queue, []
        self._dispatch_scheduled = False
        if not batch:
            return
        task = asyncio.get_running_loop().create_task(self._run_batch(batch))
        # Keep a strong reference until the batch settles.
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_batch(self, batch: list[tuple[K, asyncio.Future]]) -> None:
        keys = [key for key, _ in batch]
        self.batch_count += 1
        logger.debug("%s: fetching batch of %d key(s)", self.name, len(keys))
        try:
            values = list(await self._batch_fn(keys))
            if len(values) != len(keys):
                raise ValueError(
                    f"{self.name}: batch function returned {len(values)} values "
                    f"for {len(keys)} keys"
                )
        except asyncio.CancelledError:
            self._fail(batch, None)
            raise
        except Exception as exc:
            logger.debug("%s: batch failed: %s", self.name, exc)
            self._fail(batch, exc)
            return

        for (_, future), value in zip(batch, values):
            if not future.done():
                future.set_result(value)

    def _fail(self, batch: list[tuple[K, asyncio.Future]], exc: Exception | None) -> None:
        for key, future in batch:
            if self._cache.get(key) is future:
                del self._cache[key]
            if future.done():
                continue
            if exc is None:
                future.cancel()
            else:
                future.set_exception(exc)


# ---------------------------------------------------------------------------
# Entity loaders
# ---------------------------------------------------------------------------

def user_batch_fn(db: AsyncSession) -> BatchFn:
    async def load_users(user_ids: list[int]) -> list[User | None]:
        result = await db.execute(select(User).where(User.id.in_(user_ids)))
        by_id = {user.id: user for user in result.scalars().all()}
        return [by_id.get(user_id) for user_id in user_ids]

    return load_users


class Loaders:
    """The batch loaders available to one request."""

    def __init__(self, db: AsyncSession) -> None:
        self.user: BatchLoader[int, User] = BatchLoader(user_batch_fn(db), name="user")
