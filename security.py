import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from database import get_db
from errors import AppError, ErrorKind
from models import User as DBUser
from settings import settings

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

bearer_scheme = HTTPBearer(auto_error=False)

INVALID_TOKEN = "Invalid or missing token"


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    if expires_delta is None:
        expires_delta = timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"sub": str(user_id), "exp": expire}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> int:
    """Return the user id carried by ``token``.

    Raises JWTError for a bad signature, an expired token or a subject that
    is not a user id.
    """
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    subject = payload.get("sub")
    if subject is None:
        raise JWTError("Token has no subject")
    try:
        return int(subject)
    except (TypeError, ValueError):
        raise JWTError("Token subject is not a user id")


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> int:
    # One answer for every failure so callers cannot tell the causes apart
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AppError(ErrorKind.AUTHENTICATION, INVALID_TOKEN)
    try:
        user_id = decode_access_token(credentials.credentials)
    except JWTError:
        raise AppError(ErrorKind.AUTHENTICATION, INVALID_TOKEN)
    # A token outlives its account when an admin deletes the user
    if db.query(DBUser.id).filter(DBUser.id == user_id).first() is None:
        raise AppError(ErrorKind.AUTHENTICATION, INVALID_TOKEN)
    request.state.user_id = user_id
    return user_id


async def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> DBUser:
    user = db.get(DBUser, user_id)
    if user is None:
        raise AppError(ErrorKind.AUTHENTICATION, INVALID_TOKEN)
    return user


async def require_admin(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> DBUser:
    user = db.get(DBUser, user_id)
    if user is None or not user.is_admin:
        logger.warning("Non-admin user %s denied admin access", user_id)
        raise AppError(ErrorKind.AUTHORIZATION, "Access denied. Admin only.")
    return user
