from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.config import settings
from postboard.database import get_db
from postboard.loaders import Loaders
from postboard.mail import Mailer
from postboard.security import decode_access_token
from postboard.tokens import TokenStore

bearer_scheme = HTTPBearer(auto_error=False)


class FeedParams:
    """
    Reusable FastAPI dependency that parses the feed query parameters.

    Usage in a router::

        @router.get("/posts")
        async def list_posts(params: FeedParams = Depends()):
            ...

    Attributes
    ----------
    limit:
        Requested page size.  Values above ``settings.FEED_MAX_LIMIT``
        are accepted and clamped by the service, so clients asking for
        "everything" still get a bounded page.
    cursor:
        Opaque cursor returned as ``next_cursor`` by the previous page,
        or None for the newest posts.
    """

    def __init__(
        self,
        limit: int = Query(
            settings.FEED_DEFAULT_LIMIT,
            ge=0,
            description=f"Number of posts per page (at most {settings.FEED_MAX_LIMIT} are returned).",
        ),
        cursor: str | None = Query(
            None,
            description="Cursor from the previous page's next_cursor.",
        ),
    ) -> None:
        self.limit = limit
        self.cursor = cursor or None


# ---------------------------------------------------------------------------
# Process-wide handles, created in the application lifespan
# ---------------------------------------------------------------------------

def get_redis(request: Request):
    return request.app.state.redis


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_token_store(client=Depends(get_redis)) -> TokenStore:
    return TokenStore(client)


# ---------------------------------------------------------------------------
# Per-request state
# ---------------------------------------------------------------------------

def get_loaders(db: AsyncSession = Depends(get_db)) -> Loaders:
    """A fresh set of batch loaders for every request; never shared."""
    return Loaders(db)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> int | None:
    """
    Return the id of the authenticated caller, or None.

    Anonymous access is not an error here: read endpoints use the id only
    to decide what to disclose, and the services raise ``Unauthorized``
    for operations that require a caller.
    """
    if credentials is None:
        return None
    return decode_access_token(credentials.credentials)
