"""Authentication routes."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from tableside.core.rate_limit import limiter
from tableside.core.security import create_access_token, verify_password
from tableside.db.session import DbSession
from tableside.models.user import User
from tableside.schemas.auth import LoginRequest, Token

logger = logging.getLogger("auth")

router = APIRouter()


@router.post("/login", response_model=Token)
@limiter.limit("10/minute")
def login(request: Request, login_request: LoginRequest, db: DbSession):
    """Authenticate staff and return a JWT token."""
    client_ip = request.client.host if request.client else "unknown"
    user = db.query(User).filter(User.email == login_request.email).first()

    if not user or not verify_password(login_request.password, user.password_hash):
        logger.warning(f"Failed login attempt for email: {login_request.email} from IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    if not user.is_active:
        logger.warning(f"Login attempt for inactive user: {login_request.email} (ID: {user.id}) from IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is inactive",
        )

    logger.info(f"Successful login: {user.email} (ID: {user.id}, role: {user.role.value}) from IP: {client_ip}")
    token = create_access_token(
        data={
            "sub": str(user.id),
            "email": user.email,
            "role": user.role.value,
            "restaurant_id": user.restaurant_id,
        }
    )
    return Token(access_token=token)
