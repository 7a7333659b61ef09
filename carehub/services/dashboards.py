"""Aggregated views for the doctor and patient home screens."""

from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from carehub.models.accounts import Doctor, Patient
from carehub.models.care import CarePlan
from carehub.models.enums import AppointmentStatus, PlanStatus
from carehub.models.medication import Medication
from carehub.models.scheduling import Appointment
from carehub.services.calendar import serialize_appointment
from carehub.services.medications import get_adherence_summary, serialize_event
from carehub.services.profiles import consented_secondary_patients
from carehub.services.scheduling import get_upcoming_events
from carehub.services.vitals import get_critical_alerts


def doctor_patient_ids(db: Session, doctor: Doctor) -> list:
    rows = db.query(Patient.id).filter(
        or_(Patient.primary_doctor_id == doctor.id, Patient.id.in_(consented_secondary_patients(doctor)))
    )
    return [row.id for row in rows]


def doctor_dashboard(db: Session, doctor: Doctor, today: date | None = None) -> dict[str, Any]:
    today = today or date.today()
    patient_ids = doctor_patient_ids(db, doctor)

    appointments = (
        db.query(Appointment)
        .filter(
            Appointment.doctor_id == doctor.id,
            Appointment.start_date == today,
            Appointment.status != AppointmentStatus.CANCELLED.value,
        )
        .order_by(Appointment.start_time)
        .all()
    )
    alerts = get_critical_alerts(db, patient_ids)

    rates = []
    for patient_id in patient_ids:
        summary = get_adherence_summary(db, patient_id, days=30)
        if summary["total"]:
            rates.append(summary["adherence_rate"])

    return {
        "doctor_id": doctor.id,
        "patient_count": len(patient_ids),
        "todays_appointments": [serialize_appointment(a) for a in appointments],
        "critical_alerts": [
            {
                "reading_id": r.id,
                "patient_id": r.patient_id,
                "vital_type_id": r.vital_type_id,
                "value": r.value,
                "unit": r.unit,
                "reading_time": r.reading_time,
            }
            for r in alerts
        ],
        "average_adherence_rate": round(sum(rates) / len(rates), 2) if rates else 0,
    }


def patient_dashboard(db: Session, patient: Patient, today: date | None = None) -> dict[str, Any]:
    today = today or date.today()
    care_plans = (
        db.query(CarePlan)
        .filter(
            CarePlan.patient_id == patient.id,
            CarePlan.status == PlanStatus.ACTIVE.value,
            CarePlan.deleted_at.is_(None),
        )
        .order_by(CarePlan.created_at.desc())
        .all()
    )
    active_medications = (
        db.query(Medication)
        .filter(
            Medication.patient_id == patient.id,
            Medication.deleted_at.is_(None),
            Medication.end_date >= today,
        )
        .count()
    )
    return {
        "patient_id": patient.id,
        "upcoming_events": [serialize_event(e) for e in get_upcoming_events(db, patient.id)],
        "adherence": get_adherence_summary(db, patient.id, days=30),
        "active_care_plans": [
            {
                "id": p.id,
                "title": p.title,
                "priority": p.priority,
                "next_review_date": p.next_review_date,
                "is_due_for_review": p.is_due_for_review(today),
            }
            for p in care_plans
        ],
        "active_medications": active_medications,
    }
