from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# --- Errors ---

class FieldError(BaseModel):
    field: str
    message: str


# --- User ---

class UsernamePasswordInput(BaseModel):
    username: str = Field(max_length=100)
    email: str = Field(max_length=255)
    password: str


class LoginInput(BaseModel):
    username_or_email: str = Field(alias="usernameOrEmail")
    password: str
    model_config = ConfigDict(populate_by_name=True)


class ForgotPasswordInput(BaseModel):
    email: str


class ChangePasswordInput(BaseModel):
    token: str
    new_password: str = Field(alias="newPassword")
    model_config = ConfigDict(populate_by_name=True)


class UserPublic(BaseModel):
    id: int
    username: str
    email: str
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UserResponse(BaseModel):
    """Either ``errors`` or ``user`` is set, never both."""

    errors: list[FieldError] | None = None
    user: UserPublic | None = None
    access_token: str | None = None


# --- Post ---

class PostInput(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    text: str


class PostTitleUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=300)


class PostResponse(BaseModel):
    id: int
    title: str
    text: str
    text_snippet: str
    score: int
    creator_id: int
    creator: UserPublic | None = None
    created_at: datetime
    updated_at: datetime


class PaginatedPosts(BaseModel):
    posts: list[PostResponse]
    has_more: bool
    next_cursor: str | None = None


# --- Vote ---

class VoteInput(BaseModel):
    # Anything other than -1 counts as an upvote.
    value: int = 1
