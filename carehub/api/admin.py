"""Compliance and operations endpoints for administrators."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from carehub.api.deps import audit, require_admin, require_baa, require_roles
from carehub.jobs.maintenance import run_maintenance
from carehub.models.accounts import User
from carehub.models.audit import MaintenanceRun
from carehub.models.database import get_db
from carehub.models.enums import UserRole
from carehub.schemas.api import AuditLogResponse, BaaRequest, MaintenanceRunResponse, OrganizationCreate
from carehub.services import profiles
from carehub.services.audit import list_audit_entries

router = APIRouter(prefix="/admin", tags=["admin"])

require_system_admin = require_roles(UserRole.SYSTEM_ADMIN)


def require_compliance_admin(
    request: Request,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> User:
    """An administrator whose organization holds a valid BAA."""
    return require_baa(request, user, db)


@router.get("/audit-logs", response_model=list[AuditLogResponse])
def audit_logs(
    patient_id: UUID | None = None,
    actor: str | None = None,
    access_granted: bool | None = None,
    limit: int = 100,
    user: User = Depends(require_compliance_admin),
    db: Session = Depends(get_db),
):
    organization_id = None if user.role == UserRole.SYSTEM_ADMIN.value else user.organization_id
    return list_audit_entries(
        db,
        patient_id=patient_id,
        actor=actor,
        access_granted=access_granted,
        organization_id=organization_id,
        limit=max(1, min(limit, 1000)),
    )


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

@router.post("/maintenance/run", response_model=MaintenanceRunResponse)
def trigger_maintenance(
    request: Request,
    user: User = Depends(require_system_admin),
    db: Session = Depends(get_db),
):
    run = run_maintenance(db)
    audit(db, request, user, action="run", resource_type="MaintenanceRun",
          resource_id=run.id, detail={"status": run.status})
    db.commit()
    return run


@router.get("/maintenance/runs", response_model=list[MaintenanceRunResponse])
def maintenance_runs(
    limit: int = 20,
    user: User = Depends(require_system_admin),
    db: Session = Depends(get_db),
):
    return (
        db.query(MaintenanceRun)
        .order_by(MaintenanceRun.started_at.desc())
        .limit(max(1, min(limit, 100)))
        .all()
    )


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

@router.post("/organizations", status_code=status.HTTP_201_CREATED)
def create_organization(
    body: OrganizationCreate,
    request: Request,
    user: User = Depends(require_system_admin),
    db: Session = Depends(get_db),
):
    organization = profiles.create_organization(db, **body.model_dump())
    audit(db, request, user, action="create", resource_type="Organization", resource_id=organization.id)
    db.commit()
    return profiles.serialize_organization(organization)


@router.get("/organizations/{organization_id}")
def get_organization(
    organization_id: UUID,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if user.role != UserRole.SYSTEM_ADMIN.value and user.organization_id != organization_id:
        raise HTTPException(status_code=403, detail="Cannot view another organization")
    return profiles.serialize_organization(profiles.get_organization(db, organization_id))


@router.post("/organizations/{organization_id}/baa")
def record_baa(
    organization_id: UUID,
    body: BaaRequest,
    request: Request,
    user: User = Depends(require_system_admin),
    db: Session = Depends(get_db),
):
    organization = profiles.record_baa(db, organization_id, body.signed_at, body.expires_at)
    audit(db, request, user, action="update", resource_type="Organization",
          resource_id=organization.id, detail={"baa": "signed"})
    db.commit()
    return profiles.serialize_organization(organization)
