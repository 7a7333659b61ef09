"""
Compliance records.

- AuditLog: immutable HIPAA access trail (granted and denied access)
- MaintenanceRun: execution history of the nightly maintenance pipeline
"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text, Uuid

from carehub.models.database import Base, JSONType, utcnow


# ---------------------------------------------------------------------------
# Audit Log – immutable compliance trail
# ---------------------------------------------------------------------------
class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    actor = Column(String(128), nullable=False, comment="User id or service identity")
    user_role = Column(String(32))
    organization_id = Column(Uuid, nullable=True)
    action = Column(String(64), nullable=False, comment="create | read | update | delete | HTTP verb")
    resource_type = Column(String(128), nullable=False)
    resource_id = Column(Uuid, nullable=True)
    patient_id = Column(Uuid, nullable=True)
    ip_address = Column(String(64))
    user_agent = Column(String(512))
    request_id = Column(String(64))
    phi_accessed = Column(Boolean, default=False, nullable=False)
    access_granted = Column(Boolean, default=True, nullable=False)
    denial_reason = Column(String(255))
    encrypted_detail = Column(Text, comment="Fernet-encrypted JSON context")
    timestamp = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_audit_timestamp", "timestamp"),
        Index("ix_audit_patient", "patient_id"),
    )


# ---------------------------------------------------------------------------
# Maintenance Run – tracks pipeline execution history
# ---------------------------------------------------------------------------
class MaintenanceRun(Base):
    __tablename__ = "maintenance_runs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    pipeline_name = Column(String(128), nullable=False)
    status = Column(String(16), default="pending", nullable=False)
    started_at = Column(DateTime)
    completed_at = Column(DateTime, nullable=True)
    affected_rows = Column(Integer, default=0, nullable=False)
    tasks = Column(JSONType, default=dict)
    record_counts = Column(JSONType, default=dict)
    dag_definition = Column(JSONType, comment="Snapshot of the DAG that was executed")
