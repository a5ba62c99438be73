from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.auth.context import Actor
from taskhub.auth.dependencies import get_current_actor, get_current_user_db
from taskhub.auth.schemas import LoginIn, Token, UserCreate, UserOut, UserUpdate
from taskhub.db.dependencies import get_db_session
from taskhub.project_manager import services
from taskhub.project_manager.models import User
from taskhub.project_manager.schemas import MessageOut
from taskhub.utils import translate_service_errors

router = APIRouter()


def _invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


# -----------------------
# Authentication endpoints
# -----------------------
@router.post(
    "/auth/register",
    response_model=Token,
    status_code=status.HTTP_201_CREATED,
)
@translate_service_errors
async def register_user(
    payload: UserCreate,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Public endpoint for user registration. Returns a token for the new account.
    """
    user = await services.register_user(session, payload)
    return {"access_token": services.issue_token(user), "token_type": "bearer"}


@router.post("/auth/login", response_model=Token)
async def login(
    payload: LoginIn,
    session: AsyncSession = Depends(get_db_session),
):
    """Authenticate with email and password."""
    user = await services.authenticate_user(
        session, email=str(payload.email), password=payload.password
    )
    if not user:
        raise _invalid_credentials()
    return {"access_token": services.issue_token(user), "token_type": "bearer"}


@router.post("/auth/token", response_model=Token)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Standard OAuth2 password flow. The username field carries the email.
    """
    user = await services.authenticate_user(
        session, email=form_data.username, password=form_data.password
    )
    if not user:
        raise _invalid_credentials()
    return {"access_token": services.issue_token(user), "token_type": "bearer"}


@router.get("/auth/me", response_model=UserOut)
async def read_users_me(current_user: User = Depends(get_current_user_db)):
    """
    Protected endpoint to get the current authenticated user's details.
    """
    return current_user


# -----------------------
# User endpoints
# -----------------------
@router.get("/users", response_model=List[UserOut])
@translate_service_errors
async def list_users(
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """List all users. Admins and managers only."""
    return await services.list_users(session, actor)


@router.get("/users/{user_id}", response_model=UserOut)
@translate_service_errors
async def get_user(
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a user. Admins, managers, or the user themselves."""
    return await services.get_user(session, actor, user_id)


@router.put("/users/{user_id}", response_model=UserOut)
@translate_service_errors
async def update_user(
    user_id: str,
    payload: UserUpdate,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """Update a user. Admin or self; only admins may change roles."""
    return await services.update_user(session, actor, user_id, payload)


@router.delete("/users/{user_id}", response_model=MessageOut)
@translate_service_errors
async def delete_user(
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a user. Admin or self."""
    await services.delete_user(session, actor, user_id)
    return {"msg": "User removed"}
