# ---------------------------------------------------------------------------
# auth.py
#
# Authentication helpers.
#
# This module implements:
# - Database session dependency (`get_db`) bound to the app's Database
# - Password hashing/verification (Argon2 via passlib)
# - JWT issuance/verification (HS256 via python-jose, signed with JWT_SECRET)
# - Bearer-token guard (`get_current_user`)
# ---------------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Generator, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import config
from .models import User

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")
bearer = HTTPBearer(auto_error=False)


def get_db(request: Request) -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session and guarantees close."""
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2."""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a plaintext password against an Argon2 hash."""
    return pwd_context.verify(password, password_hash)


def issue_token(user: User, now: Optional[datetime] = None) -> str:
    """Sign a JWT for the user (`sub` = user id)."""
    now = now or datetime.utcnow()
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "iat": now,
        "exp": now + timedelta(hours=config.jwt_ttl_hours()),
    }
    return jwt.encode(claims, config.jwt_secret(), algorithm=config.jwt_algorithm())


def decode_token(token: str) -> int:
    """Return the user id from a valid token; raise 401 otherwise."""
    try:
        claims = jwt.decode(token, config.jwt_secret(), algorithms=[config.jwt_algorithm()])
        return int(claims["sub"])
    except (JWTError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> User:
    """Authenticate the request using a Bearer JWT."""
    if not creds or creds.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Not authenticated")

    user_id = decode_token(creds.credentials)
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")

    request.state.user_id = user.id
    return user
