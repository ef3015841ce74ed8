# app/api/endpoints/auth.py
from fastapi import APIRouter, Depends, status

from app.api.deps import get_repositories, get_settings
from app.core.config import Settings
from app.core.errors import AuthenticationError, ConflictError
from app.core.logging import logger
from app.core.security import create_access_token, get_password_hash, verify_password
from app.middleware.auth import get_current_user
from app.repositories.base import Repositories
from app.schemas.user import AuthResponse, AuthUser, LoginRequest, MeResponse, UserCreate

router = APIRouter()

INVALID_CREDENTIALS = "Invalid email or password"


def _auth_response(user: AuthUser, settings: Settings) -> AuthResponse:
    public_user = AuthUser(id=user.id, email=user.email, name=user.name)
    token = create_access_token(
        public_user,
        secret_key=settings.SECRET_KEY,
        expires_in_days=settings.ACCESS_TOKEN_EXPIRE_DAYS,
    )
    return AuthResponse(token=token, user=public_user)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_in: UserCreate,
    repos: Repositories = Depends(get_repositories),
    settings: Settings = Depends(get_settings),
):
    """
    Create an account and return a bearer token for it.
    """
    email = user_in.email.lower()
    if repos.users.get_by_email(email):
        logger.warning(f"Registration attempted with existing email: {email}")
        raise ConflictError("Email already registered")

    user = repos.users.create(
        email=email,
        password_hash=get_password_hash(user_in.password),
        name=user_in.name.strip(),
    )
    logger.info(f"Registered user {user.id}")
    return _auth_response(user, settings)


@router.post("/login", response_model=AuthResponse)
def login(
    credentials: LoginRequest,
    repos: Repositories = Depends(get_repositories),
    settings: Settings = Depends(get_settings),
):
    """
    Exchange email and password for a bearer token.
    Unknown email and wrong password produce the same error.
    """
    user = repos.users.get_by_email(credentials.email.strip().lower())
    if user is None or not verify_password(credentials.password, user.password_hash):
        logger.warning("Failed login attempt")
        raise AuthenticationError(INVALID_CREDENTIALS)

    return _auth_response(user, settings)


@router.get("/me", response_model=MeResponse)
def me(current_user: AuthUser = Depends(get_current_user)):
    return MeResponse(user=current_user)
