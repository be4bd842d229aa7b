"""
User service: registration, login and the password-reset flow.

Expected failures (bad input, wrong password, expired reset token) are
returned as ``UserResponse(errors=[...])`` so a client can highlight
every offending field at once.  Only store failures raise.
"""
import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.config import settings
from postboard.mail import Mailer
from postboard.models import User
from postboard.schemas import (
    ChangePasswordInput,
    FieldError,
    LoginInput,
    UsernamePasswordInput,
    UserResponse,
)
from postboard.security import create_access_token, hash_password, verify_password
from postboard.tokens import TokenStore
from postboard.validation import validate_password, validate_register

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def user_to_dict(user: User, viewer_id: int | None = None) -> dict:
    """
    Serialise a User to its public profile.

    The email address is only disclosed to the user themselves; every
    other viewer gets an empty string.
    """
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email if viewer_id == user.id else "",
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }


def _logged_in(user: User) -> UserResponse:
    return UserResponse(
        user=user_to_dict(user, viewer_id=user.id),
        access_token=create_access_token(user.id),
    )


def _error(field: str, message: str) -> UserResponse:
    return UserResponse(errors=[FieldError(field=field, message=message)])


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_user(db: AsyncSession, user_id: int | None) -> dict | None:
    """Return the caller's own profile, or None when not logged in."""
    if user_id is None:
        return None
    user = await db.get(User, user_id)
    if user is None:
        return None
    return user_to_dict(user, viewer_id=user_id)


async def register(db: AsyncSession, options: UsernamePasswordInput) -> UserResponse:
    errors = validate_register(options)
    if errors:
        return UserResponse(errors=errors)

    taken = await db.execute(
        select(User.id).where(
            or_(User.username == options.username, User.email == options.email)
        )
    )
    if taken.first() is not None:
        return _error("username", "username already taken")

    user = User(
        username=options.username,
        email=options.email,
        password=hash_password(options.password),
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race with a concurrent registration.  Nothing else has
        # been written in this transaction, so rolling it back is safe.
        await db.rollback()
        return _error("username", "username already taken")

    logger.info("Registered user id=%s username=%s", user.id, user.username)
    return _logged_in(user)


async def login(db: AsyncSession, data: LoginInput) -> UserResponse:
    identifier = data.username_or_email
    column = User.email if "@" in identifier else User.username
    result = await db.execute(select(User).where(column == identifier))
    user = result.scalar_one_or_none()
    if user is None:
        return _error("usernameOrEmail", "that username doesn't exist")
    if not verify_password(data.password, user.password):
        return _error("password", "incorrect password")
    return _logged_in(user)


async def request_password_reset(
    db: AsyncSession, tokens: TokenStore, mailer: Mailer, email: str
) -> bool:
    """
    Mail a reset link to *email* if it belongs to a user.

    Always returns True so the response does not reveal which addresses
    are registered.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        logger.info("Password reset requested for unknown address")
        return True

    token = await tokens.issue(user.id)
    await mailer.send(
        email,
        f'<a href="{settings.FRONTEND_URL}/change-password/{token}">reset password</a>',
    )
    return True


async def complete_password_reset(
    db: AsyncSession, tokens: TokenStore, data: ChangePasswordInput
) -> UserResponse:
    """
    Set a new password using a reset token.

    The new password is flushed first, then the token is consumed with a
    single atomic GETDEL.  Only the request that wins the token commits;
    a concurrent request presenting the same token rolls back and gets
    "token expired".  If the commit itself fails the token is put back,
    so it is only used up by a password change that actually landed.
    """
    errors = validate_password(data.new_password, field="newPassword")
    user_id = await tokens.resolve(data.token)
    if user_id is None:
        errors.append(FieldError(field="token", message="token expired"))
    if errors:
        return UserResponse(errors=errors)

    user = await db.get(User, user_id)
    if user is None:
        await tokens.invalidate(data.token)
        return _error("token", "user no longer exists")

    user.password = hash_password(data.new_password)
    await db.flush()

    claim = await tokens.consume(data.token)
    if claim is None or claim.user_id != user_id:
        await db.rollback()
        return _error("token", "token expired")

    try:
        await db.commit()
    except Exception:
        await tokens.restore(data.token, claim)
        raise

    logger.info("Password changed for user id=%s", user_id)
    return _logged_in(user)
