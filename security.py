import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from config import Settings, get_app_settings
from database import get_db
from errors import AuthenticationError, AuthorizationError, InvalidTokenError
from models import User
from schemas import TokenIdentity

log = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)
bearer_scheme = HTTPBearer(auto_error=False)


def get_password_hash(password: str, rounds: int = 12) -> str:
    return pwd_context.handler("bcrypt").using(rounds=rounds).hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # unknown or malformed hash
        return False


def create_access_token(
    user_id: int,
    email: str,
    settings: Settings,
    expires_delta: Optional[timedelta] = None,
) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_expires_minutes))
    to_encode = {"sub": str(user_id), "email": email, "iat": now, "exp": expire}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> TokenIdentity:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise InvalidTokenError(str(e)) from e

    sub = payload.get("sub")
    email = payload.get("email")
    if not sub or not email or "exp" not in payload:
        raise InvalidTokenError("Token payload is incomplete")
    try:
        return TokenIdentity(user_id=int(sub), email=email)
    except ValueError as e:
        raise InvalidTokenError("Token subject is not a user id") from e


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_app_settings),
) -> TokenIdentity:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")
    try:
        return decode_access_token(credentials.credentials, settings)
    except InvalidTokenError as e:
        log.warning("Rejected access token: %s", e)
        raise AuthorizationError("Invalid or expired token")


def get_current_user(
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> User:
    user = db.get(User, identity.user_id)
    if user is None:
        # token outlived its account
        raise AuthorizationError("Invalid or expired token")
    return user


# Admin guard
def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        log.warning("User %s attempted an admin action", user.id)
        raise AuthorizationError("Admin privileges required")
    return user
