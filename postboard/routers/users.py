from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.database import get_db
from postboard.dependencies import get_current_user_id, get_mailer, get_token_store
from postboard.mail import Mailer
from postboard.schemas import (
    ChangePasswordInput,
    ForgotPasswordInput,
    LoginInput,
    UsernamePasswordInput,
    UserPublic,
    UserResponse,
)
from postboard.services import user_service
from postboard.tokens import TokenStore

router = APIRouter(prefix="/api/v1/users", tags=["users"])

@router.get("/me", response_model=UserPublic | None)
async def me(
    db: AsyncSession = Depends(get_db),
    user_id: int | None = Depends(get_current_user_id),
):
    return await user_service.get_user(db, user_id)

@router.post("/register", response_model=UserResponse, response_model_exclude_none=True)
async def register(data: UsernamePasswordInput, db: AsyncSession = Depends(get_db)):
    return await user_service.register(db, data)

@router.post("/login", response_model=UserResponse, response_model_exclude_none=True)
async def login(data: LoginInput, db: AsyncSession = Depends(get_db)):
    return await user_service.login(db, data)

@router.post("/forgot-password", response_model=bool)
async def forgot_password(
    data: ForgotPasswordInput,
    db: AsyncSession = Depends(get_db),
    tokens: TokenStore = Depends(get_token_store),
    mailer: Mailer = Depends(get_mailer),
):
    return await user_service.request_password_reset(db, tokens, mailer, data.email)

@router.post("/change-password", response_model=UserResponse, response_model_exclude_none=True)
async def change_password(
    data: ChangePasswordInput,
    db: AsyncSession = Depends(get_db),
    tokens: TokenStore = Depends(get_token_store),
):
    return await user_service.complete_password_reset(db, tokens, data)
