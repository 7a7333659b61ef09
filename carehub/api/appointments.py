"""Appointments, doctor availability and calendar views."""

from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from carehub.api.deps import audit, get_current_user, load_patient, require_hipaa_consent
from carehub.models.accounts import User
from carehub.models.database import get_db
from carehub.models.enums import UserRole
from carehub.models.scheduling import Appointment
from carehub.schemas.api import (
    AppointmentCreate,
    AvailabilityRequest,
    AvailabilityResponse,
    CancelRequest,
    RescheduleRequest,
    SlotResponse,
    StatusUpdate,
)
from carehub.services import calendar, profiles

router = APIRouter(tags=["appointments"])

ADMIN_ROLES = {UserRole.SYSTEM_ADMIN.value, UserRole.HOSPITAL_ADMIN.value}


def _check_doctor_owner(db: Session, user: User, doctor_id: UUID) -> None:
    """Only the doctor themself or an administrator may manage a calendar."""
    if user.role in ADMIN_ROLES:
        profiles.get_doctor(db, doctor_id)
        return
    doctor = profiles.doctor_for_user(db, user)
    if doctor is None or doctor.id != doctor_id:
        raise HTTPException(status_code=403, detail="Cannot manage another doctor's calendar")


def _load_appointment(db: Session, request: Request, user: User, appointment_id: UUID) -> Appointment:
    appointment = calendar.get_appointment(db, appointment_id)
    load_patient(db, request, user, appointment.patient_id)
    return appointment


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------

@router.post("/appointments", status_code=status.HTTP_201_CREATED)
def create_appointment(
    body: AppointmentCreate,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, body.patient_id)
    appointment = calendar.create_appointment(db, organizer_id=user.id, **body.model_dump())
    audit(db, request, user, action="create", resource_type="Appointment",
          resource_id=appointment.id, patient_id=patient.id)
    db.commit()
    return calendar.serialize_appointment(appointment)


@router.get("/appointments/{appointment_id}")
def get_appointment(
    appointment_id: UUID,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    appointment = _load_appointment(db, request, user, appointment_id)
    audit(db, request, user, action="read", resource_type="Appointment",
          resource_id=appointment.id, patient_id=appointment.patient_id)
    db.commit()
    return calendar.serialize_appointment(appointment)


@router.post("/appointments/{appointment_id}/reschedule")
def reschedule_appointment(
    appointment_id: UUID,
    body: RescheduleRequest,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    appointment = _load_appointment(db, request, user, appointment_id)
    calendar.reschedule_appointment(db, appointment.id, body.start_time, body.end_time, body.slot_id)
    audit(db, request, user, action="update", resource_type="Appointment",
          resource_id=appointment.id, patient_id=appointment.patient_id,
          detail={"rescheduled_to": body.start_time.isoformat()})
    db.commit()
    return calendar.serialize_appointment(appointment)


@router.post("/appointments/{appointment_id}/cancel")
def cancel_appointment(
    appointment_id: UUID,
    body: CancelRequest,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    appointment = _load_appointment(db, request, user, appointment_id)
    calendar.cancel_appointment(db, appointment.id, body.reason)
    audit(db, request, user, action="cancel", resource_type="Appointment",
          resource_id=appointment.id, patient_id=appointment.patient_id)
    db.commit()
    return calendar.serialize_appointment(appointment)


@router.patch("/appointments/{appointment_id}/status")
def update_appointment_status(
    appointment_id: UUID,
    body: StatusUpdate,
    request: Request,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    appointment = _load_appointment(db, request, user, appointment_id)
    calendar.update_status(db, appointment.id, body.status)
    audit(db, request, user, action="update", resource_type="Appointment",
          resource_id=appointment.id, patient_id=appointment.patient_id,
          detail={"status": body.status})
    db.commit()
    return calendar.serialize_appointment(appointment)


# ---------------------------------------------------------------------------
# Calendars
# ---------------------------------------------------------------------------

@router.put("/calendar/doctors/{doctor_id}/availability", response_model=AvailabilityResponse)
def set_availability(
    doctor_id: UUID,
    body: AvailabilityRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _check_doctor_owner(db, user, doctor_id)
    fields = body.model_dump()
    availability = calendar.set_doctor_availability(db, doctor_id, fields.pop("day_of_week"), **fields)
    db.commit()
    return availability


@router.get("/calendar/doctors/{doctor_id}/slots", response_model=list[SlotResponse])
def available_slots(
    doctor_id: UUID,
    day: date = Query(..., alias="date"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profiles.get_doctor(db, doctor_id)
    slots = calendar.get_available_slots(db, doctor_id, day)
    db.commit()
    return slots


@router.get("/calendar/doctors/{doctor_id}")
def doctor_calendar(
    doctor_id: UUID,
    start: date | None = None,
    end: date | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _check_doctor_owner(db, user, doctor_id)
    start = start or date.today()
    end = end or start + timedelta(days=7)
    return calendar.get_doctor_calendar(db, doctor_id, start, end)


@router.get("/calendar/patients/{patient_id}")
def patient_calendar(
    patient_id: UUID,
    request: Request,
    start: date | None = None,
    end: date | None = None,
    user: User = Depends(require_hipaa_consent),
    db: Session = Depends(get_db),
):
    patient = load_patient(db, request, user, patient_id)
    start = start or date.today()
    end = end or start + timedelta(days=30)
    result = calendar.get_patient_calendar(db, patient.id, start, end)
    audit(db, request, user, action="read", resource_type="Calendar", patient_id=patient.id)
    db.commit()
    return result
