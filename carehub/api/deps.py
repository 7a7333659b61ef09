"""
Shared FastAPI dependencies: authentication, role guards, HIPAA gates
and audit helpers.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from carehub.errors import CareHubError, PermissionDeniedError
from carehub.models.accounts import Patient, User
from carehub.models.database import get_db
from carehub.models.enums import AccountStatus, UserRole
from carehub.services import hipaa
from carehub.services.assignments import has_patient_access
from carehub.services.audit import AccessContext, log_access_denied, log_action
from carehub.services.profiles import get_patient
from carehub.services.security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_access_token(credentials.credentials)
    try:
        user_id = UUID(payload.get("sub", ""))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject"
        ) from None

    user = db.query(User).filter(User.id == user_id).first()
    if user is None or user.account_status != AccountStatus.ACTIVE.value:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive"
        )
    request.state.user = user
    return user


def require_roles(*roles: UserRole | str):
    """Dependency factory: 403 unless the caller holds one of ``roles``."""
    allowed = {r.value if isinstance(r, UserRole) else r for r in roles}

    def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this operation",
            )
        return user

    return checker


require_admin = require_roles(UserRole.SYSTEM_ADMIN, UserRole.HOSPITAL_ADMIN)
require_provider = require_roles(UserRole.DOCTOR, UserRole.HSP)


def access_context(request: Request, user: User | None) -> AccessContext:
    return AccessContext(
        actor=str(user.id) if user else "anonymous",
        user_role=user.role if user else None,
        organization_id=user.organization_id if user else None,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None),
    )


def require_hipaa_consent(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> User:
    try:
        hipaa.check_hipaa_consent(user)
    except PermissionDeniedError as exc:
        log_access_denied(
            db,
            reason=exc.message,
            action=request.method,
            resource_type=request.url.path,
            context=access_context(request, user),
        )
        raise
    return user


def require_baa(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> User:
    if user.role == UserRole.SYSTEM_ADMIN.value:
        return user
    try:
        hipaa.check_business_associate_agreement(db, user.organization_id)
    except CareHubError as exc:
        log_access_denied(
            db,
            reason=exc.message,
            action=request.method,
            resource_type=request.url.path,
            context=access_context(request, user),
        )
        raise
    return user


def authorize_patient(db: Session, request: Request, user: User, patient: Patient) -> None:
    """403 unless the caller has a care relationship with the patient."""
    related = has_patient_access(db, user, patient)
    assessment = hipaa.detect_unusual_access(user, patient.id, has_relationship=related)
    if assessment.blocked:
        log_access_denied(
            db,
            reason="; ".join(a.details for a in assessment.alerts if a.risk_level == "high"),
            action=request.method,
            resource_type=request.url.path,
            context=access_context(request, user),
            patient_id=patient.id,
        )
        raise PermissionDeniedError("Additional verification required")


def load_patient(db: Session, request: Request, user: User, patient_id: UUID) -> Patient:
    patient = get_patient(db, patient_id)
    authorize_patient(db, request, user, patient)
    return patient


def audit(
    db: Session,
    request: Request,
    user: User,
    *,
    action: str,
    resource_type: str,
    resource_id: UUID | None = None,
    patient_id: UUID | None = None,
    detail: dict[str, Any] | None = None,
) -> None:
    log_action(
        db,
        actor=str(user.id),
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        patient_id=patient_id,
        detail=detail,
        context=access_context(request, user),
        phi_accessed=patient_id is not None
        or hipaa.contains_phi(detail, dict(request.query_params), request.path_params),
    )
