"""
Domain errors.

Field validation problems are not exceptions: they are collected as
``FieldError`` values and returned to the caller.  The exceptions here
cover the cases where an operation cannot proceed at all.  Store
failures (``SQLAlchemyError``, ``RedisError``) are not wrapped and
propagate as-is.
"""


class PostboardError(Exception):
    """Base class for errors raised by the service layer."""


class Unauthorized(PostboardError):
    """The caller is not authenticated, or may not touch this row."""

    def __init__(self, detail: str = "not authenticated") -> None:
        super().__init__(detail)
        self.detail = detail


class NotFound(PostboardError):
    """A mutation targeted a row that does not exist."""

    def __init__(self, entity: str, key) -> None:
        super().__init__(f"{entity} {key!r} not found")
        self.entity = entity
        self.key = key
        self.detail = f"{entity} not found"


class InvalidInput(PostboardError):
    """Carries field errors out of a read path that has no error payload."""

    def __init__(self, errors: list) -> None:
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in errors))
        self.errors = errors
