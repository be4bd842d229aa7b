import time
from contextvars import ContextVar

from sqlalchemy import event
from starlette.types import ASGIApp, Receive, Scope, Send

# ---------------------------------------------------------------------------
# Per-request context variable
# ---------------------------------------------------------------------------


class QueryCounter:
    __slots__ = ("count",)

    def __init__(self) -> None:
        self.count = 0


# Holds a mutable counter rather than an int: batch loaders flush in their
# own task, which runs in a copy of the request context.  A shared object
# keeps those statements on the request's tally.
query_counter_var: ContextVar[QueryCounter | None] = ContextVar("query_counter", default=None)


def install_query_counter(engine) -> None:
    """
    Register a ``before_cursor_execute`` listener on *engine* that bumps
    the current request's ``QueryCounter`` for every SQL statement.

    The counter is what makes batching observable: a feed page should
    cost one posts query plus one users query, however many posts it
    holds.  Call once per engine (``database.py`` and ``conftest.py``).
    """
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        counter = query_counter_var.get()
        if counter is not None:
            counter.count += 1


def start_query_count() -> QueryCounter:
    counter = QueryCounter()
    query_counter_var.set(counter)
    return counter


# ---------------------------------------------------------------------------
# Middleware (pure ASGI, so the counter set here is the one the app sees)
# ---------------------------------------------------------------------------

class TimingMiddleware:
    """
    Adds ``X-Response-Time-Ms`` and ``X-Query-Count`` to every HTTP
    response.

    Unlike ``BaseHTTPMiddleware`` this does not run the inner app in a
    child task, so the counter installed here is inherited by the
    endpoint and everything it spawns.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        counter = start_query_count()
        start = time.perf_counter()

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(duration_ms).encode()))
                headers.append((b"x-query-count", str(counter.count).encode()))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_wrapper)
