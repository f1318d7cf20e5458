import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

import crud
from database import get_db
from errors import AppError, ErrorKind
from models import User as DBUser
from ratelimit import auth_limiter
from schemas import (
    AuthResponse,
    MessageResponse,
    ProfileResponse,
    ProfileUpdate,
    User,
    UserCreate,
    UserLogin,
)
from security import create_access_token, get_current_user, get_current_user_id, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


# Authentication endpoints
@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_limiter)],
)
async def register(user: UserCreate, db: Session = Depends(get_db)):
    db_user = crud.create_user(db, user.username, user.email, user.password)
    return {
        "message": "User registered successfully",
        "token": create_access_token(db_user.id),
        "username": db_user.username,
        "email": db_user.email,
    }


@router.post("/login", response_model=AuthResponse, dependencies=[Depends(auth_limiter)])
async def login(credentials: UserLogin, db: Session = Depends(get_db)):
    user = crud.get_user_by_email(db, credentials.email)
    if not user or not verify_password(credentials.password, user.hashed_password):
        logger.info("Failed login for %s", credentials.email)
        raise AppError(ErrorKind.AUTHENTICATION, "Invalid credentials")
    crud.record_login(db, user)
    return {
        "message": "Login successful",
        "token": create_access_token(user.id),
        "username": user.username,
        "email": user.email,
    }


@router.post("/logout", response_model=MessageResponse)
async def logout(user_id: int = Depends(get_current_user_id)):
    # Tokens are stateless; the client drops its copy
    return {"message": "Logged out successfully"}


@router.get("/profile", response_model=User)
async def read_profile(current_user: DBUser = Depends(get_current_user)):
    return current_user


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    profile: ProfileUpdate,
    current_user: DBUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = crud.update_profile(db, current_user, username=profile.username, email=profile.email)
    return {
        "message": "Profile updated successfully",
        "username": user.username,
        "email": user.email,
    }
