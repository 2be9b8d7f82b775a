# eventhub/core/security.py
from __future__ import annotations

import datetime as dt
from typing import Optional

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from eventhub.config import get_settings
from eventhub.db.session import get_db
from eventhub.models.user import User

logger = structlog.get_logger(__name__)

pwd_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer = HTTPBearer()
optional_bearer = HTTPBearer(auto_error=False)

ACCESS = "access"
REFRESH = "refresh"


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)

def _ts(d: dt.datetime) -> int:
    if d.tzinfo is None:
        d = d.replace(tzinfo=dt.timezone.utc)
    else:
        d = d.astimezone(dt.timezone.utc)
    return int(d.timestamp())

def hash_password(plain: str) -> str:
    return pwd_ctx.hash(plain)

def verify_password(plain: str, hashed: str) -> bool:
    return pwd_ctx.verify(plain, hashed)

def _encode(sub: str, lifetime: dt.timedelta, typ: str) -> str:
    settings = get_settings()
    now = _utc_now()
    payload = {
        "sub": sub,
        "typ": typ,
        "iat": _ts(now),
        "exp": _ts(now + lifetime),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)

def create_access(sub: str) -> str:
    return _encode(sub, dt.timedelta(minutes=get_settings().JWT_ACCESS_MIN), ACCESS)

def create_refresh(sub: str) -> str:
    return _encode(sub, dt.timedelta(days=get_settings().JWT_REFRESH_DAYS), REFRESH)

def decode_token(token: str) -> dict:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError as e:
        raise ValueError(str(e))


def _user_for_token(token: str, db: Session) -> User:
    try:
        payload = decode_token(token)
        if payload.get("typ") != ACCESS:
            raise ValueError("Not an access token")
        email = payload.get("sub")
        if not email:
            raise ValueError("Missing subject")
    except ValueError as exc:
        logger.info("auth.token_rejected", reason=str(exc))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    user = db.query(User).filter(User.email == email, User.is_active.is_(True)).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return user


def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    """FastAPI dependency that validates an access token and returns an active user."""
    return _user_for_token(creds.credentials, db)


def get_optional_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(optional_bearer),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user on public routes: no token means anonymous, a bad token is still 401."""
    if creds is None:
        return None
    return _user_for_token(creds.credentials, db)
