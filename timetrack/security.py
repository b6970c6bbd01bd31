from datetime import datetime, timedelta, timezone

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, get_secret_key
from .db import get_db
from .errors import AuthenticationError
from .logging import get_logger
from .models import User

logger = get_logger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def normalize_email(value: str) -> str:
    return value.strip().lower()


def create_access_token(user_id: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    return jwt.encode({"sub": user_id, "exp": expire}, get_secret_key(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> str:
    """Return the user id carried by ``token``."""
    secret = get_secret_key()
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except ExpiredSignatureError as exc:
        raise AuthenticationError("Token expired", code="AUTH_TOKEN_EXPIRED") from exc
    except JWTError as exc:
        raise AuthenticationError("Invalid token") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token")
    return user_id


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(select(User).where(User.email == email)).scalar_one_or_none()


def get_current_user(
    token: str | None = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User:
    if not token:
        raise AuthenticationError("Access token required", code="AUTH_TOKEN_REQUIRED")

    user_id = decode_access_token(token)
    user = db.get(User, user_id)
    if not user:
        logger.warning(f"Token for unknown user {user_id}")
        raise AuthenticationError("User not found")
    return user
