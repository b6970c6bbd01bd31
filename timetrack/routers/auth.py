from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import AlreadyExistsError, AuthenticationError, ValidationError
from ..logging import get_logger, mask_email
from ..models import User
from ..schemas import RegisterRequest, TokenResponse, UserOut
from ..security import (
    create_access_token,
    get_current_user,
    get_user_by_email,
    hash_password,
    normalize_email,
    verify_password,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(access_token=create_access_token(user.id), user=UserOut.model_validate(user))


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    email = normalize_email(payload.email)
    if not email or "@" not in email:
        raise ValidationError("Please enter a valid email address")
    if get_user_by_email(db, email):
        raise AlreadyExistsError("Email already registered", code="AUTH_EMAIL_TAKEN")

    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        default_hourly_rate=payload.default_hourly_rate,
    )
    if payload.idle_timeout_seconds is not None:
        user.idle_timeout_seconds = payload.idle_timeout_seconds
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user {user.id} ({mask_email(email)})")
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    email = normalize_email(form_data.username)
    password = form_data.password
    if not email or not password:
        raise ValidationError("Invalid credentials")
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        logger.warning(f"Authentication failed - email={mask_email(email)}")
        raise AuthenticationError("Invalid credentials", code="AUTH_INVALID_CREDENTIALS")
    return _token_response(user)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user


@router.post("/refresh", response_model=TokenResponse)
def refresh(user: User = Depends(get_current_user)):
    return _token_response(user)
