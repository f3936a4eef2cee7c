from fastapi import APIRouter, Depends, Form, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from uptimer.auth import (
    create_access_token,
    get_current_user_api,
    hash_password,
    verify_password,
)
from uptimer.config import get_settings
from uptimer.database import get_db
from uptimer.models.user import User
from uptimer.schemas import LoginResponse, SignupRequest, UserResponse

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()


def _login_response(message: str, user: User, status_code: int = 200) -> JSONResponse:
    token = create_access_token(data={"sub": user.id})
    response = JSONResponse(
        status_code=status_code,
        content=LoginResponse(
            message=message,
            user=UserResponse.model_validate(user),
        ).model_dump(mode="json"),
    )
    response.set_cookie(
        key="access_token",
        value=token,
        httponly=True,
        samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
        secure=False,
    )
    return response


@router.post("/signup", response_model=LoginResponse, status_code=201)
async def signup(body: SignupRequest, db: AsyncSession = Depends(get_db)):
    # Check if email already exists
    result = await db.execute(select(User).where(User.email == body.email))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )

    user = User(
        email=body.email,
        password_hash=hash_password(body.password),
        name=body.name,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    return _login_response("Account created successfully", user, status_code=201)


@router.post("/login", response_model=LoginResponse)
async def login_user(
    username: str = Form(...),
    password: str = Form(...),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User).where(User.email == username))
    user = result.scalar_one_or_none()
    if not user or not verify_password(password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    return _login_response("Logged in successfully", user)


@router.post("/logout")
async def logout():
    response = JSONResponse(content={"message": "Logged out successfully"})
    response.delete_cookie("access_token")
    return response


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user_api)):
    return UserResponse.model_validate(user)
