import uuid

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, String, Text, Uuid

from carehub.models.database import Base, utcnow
from carehub.models.enums import AlertLevel


class VitalType(Base):
    __tablename__ = "vital_types"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), unique=True, nullable=False)
    unit = Column(String(32), nullable=False)
    normal_min = Column(Float)
    normal_max = Column(Float)
    critical_min = Column(Float)
    critical_max = Column(Float)
    description = Column(Text)


class VitalReading(Base):
    __tablename__ = "vital_readings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    vital_type_id = Column(Uuid, ForeignKey("vital_types.id"), nullable=False)
    value = Column(Float, nullable=False)
    unit = Column(String(32), nullable=False)
    reading_time = Column(DateTime, default=utcnow, nullable=False)
    alert_level = Column(String(16), default=AlertLevel.NORMAL.value, nullable=False)
    notes = Column(Text)
    recorded_by_user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_vital_readings_patient_time", "patient_id", "reading_time"),
        Index("ix_vital_readings_alert", "alert_level"),
    )
