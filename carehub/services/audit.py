"""Audit logging service for HIPAA compliance tracking."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from carehub.models.audit import AuditLog
from carehub.services.encryption import phi_cipher

logger = logging.getLogger(__name__)


@dataclass
class AccessContext:
    """Request facts copied onto every audit entry written for it."""

    actor: str
    user_role: str | None = None
    organization_id: UUID | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None


def log_action(
    db: Session,
    *,
    actor: str,
    action: str,
    resource_type: str,
    resource_id: UUID | None = None,
    patient_id: UUID | None = None,
    detail: dict[str, Any] | None = None,
    context: AccessContext | None = None,
    phi_accessed: bool = False,
) -> AuditLog:
    """Write an immutable audit log entry."""
    entry = AuditLog(
        actor=actor,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        patient_id=patient_id,
        phi_accessed=phi_accessed,
        access_granted=True,
        encrypted_detail=phi_cipher.encrypt_json(detail) or None,
    )
    _apply_context(entry, context)
    db.add(entry)
    db.flush()
    logger.info("AUDIT: %s %s %s/%s", actor, action, resource_type, resource_id)
    return entry


def log_access_denied(
    db: Session,
    *,
    reason: str,
    action: str,
    resource_type: str,
    context: AccessContext,
    patient_id: UUID | None = None,
) -> None:
    """
    Record a denied access and commit it immediately; the request that
    triggered it is about to fail and its session will not be committed.
    """
    entry = AuditLog(
        actor=context.actor,
        action=action,
        resource_type=resource_type,
        patient_id=patient_id,
        phi_accessed=False,
        access_granted=False,
        denial_reason=reason,
    )
    _apply_context(entry, context)
    db.add(entry)
    db.commit()
    logger.warning("AUDIT DENIED: %s %s %s (%s)", context.actor, action, resource_type, reason)


def list_audit_entries(
    db: Session,
    *,
    patient_id: UUID | None = None,
    actor: str | None = None,
    access_granted: bool | None = None,
    organization_id: UUID | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    query = db.query(AuditLog)
    if patient_id is not None:
        query = query.filter(AuditLog.patient_id == patient_id)
    if actor is not None:
        query = query.filter(AuditLog.actor == actor)
    if access_granted is not None:
        query = query.filter(AuditLog.access_granted == access_granted)
    if organization_id is not None:
        query = query.filter(AuditLog.organization_id == organization_id)
    return query.order_by(AuditLog.timestamp.desc()).limit(limit).all()


def _apply_context(entry: AuditLog, context: AccessContext | None) -> None:
    if context is None:
        return
    entry.user_role = context.user_role
    entry.organization_id = context.organization_id
    entry.ip_address = context.ip_address
    entry.user_agent = context.user_agent
    entry.request_id = context.request_id
