"""Registration, login and HIPAA authorization."""

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from carehub.api.deps import audit, get_current_user
from carehub.api.limiter import limiter
from carehub.config import settings
from carehub.models.accounts import User
from carehub.models.database import get_db
from carehub.schemas.api import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from carehub.services import profiles
from carehub.services.security import create_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_AUTH)
def register(request: Request, body: RegisterRequest, db: Session = Depends(get_db)):
    user = profiles.register_user(db, **body.model_dump())
    audit(db, request, user, action="create", resource_type="User", resource_id=user.id)
    db.commit()
    return user


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.RATE_LIMIT_AUTH)
def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)):
    user = profiles.authenticate(db, body.email, body.password)
    audit(db, request, user, action="login", resource_type="User", resource_id=user.id)
    db.commit()
    return TokenResponse(
        access_token=create_access_token(user),
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user_id=user.id,
        role=user.role,
    )


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


@router.post("/hipaa-consent", response_model=UserResponse)
def grant_hipaa_consent(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Record the caller's HIPAA authorization; valid for one year."""
    profiles.record_hipaa_consent(db, user)
    audit(db, request, user, action="consent", resource_type="HipaaAuthorization", resource_id=user.id)
    db.commit()
    return user
