"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Health / auth
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str
    environment: str
    database: str


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=1, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: Literal["SYSTEM_ADMIN", "HOSPITAL_ADMIN", "DOCTOR", "HSP", "PATIENT", "CAREGIVER"] = "PATIENT"
    phone: str | None = None
    organization_id: UUID | None = None
    hsp_type: str | None = None


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: UUID
    role: str


class UserResponse(ORMModel):
    id: UUID
    email: str
    first_name: str
    last_name: str
    role: str
    account_status: str
    organization_id: UUID | None = None
    hipaa_consent_date: datetime | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

class PatientUpdate(BaseModel):
    date_of_birth: date | None = None
    ssn: str | None = Field(None, pattern=r"^\d{3}-?\d{2}-?\d{4}$")
    gender: Literal["MALE", "FEMALE", "OTHER", "PREFER_NOT_TO_SAY"] | None = None
    blood_type: str | None = Field(None, max_length=4)
    height_cm: float | None = Field(None, gt=0)
    weight_kg: float | None = Field(None, gt=0)
    allergies: list[dict[str, Any]] | None = None
    medical_history: list[dict[str, Any]] | None = None
    emergency_contacts: list[dict[str, Any]] | None = None
    primary_doctor_id: UUID | None = None


class DoctorUpdate(BaseModel):
    medical_license_number: str | None = None
    specialties: list[str] | None = None
    board_certifications: list[str] | None = None
    years_of_experience: int | None = Field(None, ge=0)
    consultation_fee: float | None = Field(None, ge=0)


class HSPUpdate(BaseModel):
    hsp_type: str | None = None
    license_number: str | None = None
    certifications: list[str] | None = None
    specializations: list[str] | None = None
    years_of_experience: int | None = Field(None, ge=0)
    supervising_doctor_id: UUID | None = None


# ---------------------------------------------------------------------------
# Care and treatment plans
# ---------------------------------------------------------------------------

class CarePlanCreate(BaseModel):
    patient_id: UUID
    title: str | None = None
    description: str | None = None
    chronic_conditions: list[str] = []
    long_term_goals: list[Any] | None = None
    interventions: list[Any] | None = None
    monitoring_parameters: list[Any] | None = None
    target_values: dict[str, Any] | None = None
    medications: list[Any] | None = None
    care_team_members: list[Any] | None = None
    start_date: date | None = None
    end_date: date | None = None
    review_frequency_months: int = Field(3, ge=1, le=12)
    next_review_date: date | None = None
    priority: str | None = None
    status: str | None = None


class CarePlanUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    chronic_conditions: list[str] | None = None
    long_term_goals: list[Any] | None = None
    interventions: list[Any] | None = None
    monitoring_parameters: list[Any] | None = None
    target_values: dict[str, Any] | None = None
    medications: list[Any] | None = None
    care_team_members: list[Any] | None = None
    end_date: date | None = None
    review_frequency_months: int | None = Field(None, ge=1, le=12)
    priority: str | None = None
    status: str | None = None


class ProgressNoteRequest(BaseModel):
    note: str = Field(..., min_length=1)


class OutcomeMeasureRequest(BaseModel):
    measure: str = Field(..., min_length=1)
    value: Any


class TreatmentPlanCreate(BaseModel):
    patient_id: UUID
    primary_diagnosis: str = Field(..., min_length=1)
    title: str | None = None
    description: str | None = None
    secondary_diagnoses: list[str] | None = None
    chief_complaint: str | None = None
    symptoms: list[str] | None = None
    treatment_goals: list[Any] | None = None
    medications: list[Any] | None = None
    instructions: str | None = None
    start_date: datetime | None = None
    expected_duration_days: int | None = Field(None, ge=1, le=365)
    end_date: datetime | None = None
    follow_up_required: bool = True
    follow_up_date: datetime | None = None
    priority: str | None = None


class TreatmentPlanUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    secondary_diagnoses: list[str] | None = None
    symptoms: list[str] | None = None
    treatment_goals: list[Any] | None = None
    instructions: str | None = None
    end_date: datetime | None = None
    follow_up_date: datetime | None = None
    priority: str | None = None
    status: str | None = None


class ProgressUpdate(BaseModel):
    completion_percentage: int


# ---------------------------------------------------------------------------
# Medications
# ---------------------------------------------------------------------------

class MedicineCreate(BaseModel):
    name: str = Field(..., min_length=1)
    type: str = "tablet"
    description: str | None = None
    details: dict[str, Any] | None = None
    public_medicine: bool = True


class MedicineResponse(ORMModel):
    id: UUID
    name: str
    type: str | None = None
    description: str | None = None


class MedicationCreate(BaseModel):
    patient_id: UUID
    medicine_id: UUID
    start_date: date
    end_date: date
    quantity: int | float = Field(1, gt=0)
    strength: str = ""
    unit: str = ""
    when_to_take: list[str] | None = None
    repeat_type: str = "daily"
    instructions: str | None = None
    care_plan_id: UUID | None = None


class AdherenceLog(BaseModel):
    status: Literal["completed", "partial", "missed"] = "completed"
    notes: str | None = None
    response_data: dict[str, Any] | None = None


class EventCompletion(BaseModel):
    notes: str | None = None
    response_data: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

class AvailabilityRequest(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: time
    end_time: time
    slot_duration: int = Field(30, gt=0, le=480)
    max_appointments_per_slot: int = Field(1, ge=1)
    break_start_time: time | None = None
    break_end_time: time | None = None
    is_available: bool = True


class AvailabilityResponse(ORMModel):
    id: UUID
    doctor_id: UUID
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration: int
    max_appointments_per_slot: int
    break_start_time: time | None = None
    break_end_time: time | None = None
    is_available: bool


class SlotResponse(BaseModel):
    slot_id: UUID
    start_time: time
    end_time: time
    available_spots: int
    slot_type: str


class AppointmentCreate(BaseModel):
    patient_id: UUID
    doctor_id: UUID
    start_time: datetime
    end_time: datetime
    slot_id: UUID | None = None
    appointment_type: str = "consultation"
    description: str | None = None
    care_plan_id: UUID | None = None


class RescheduleRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    slot_id: UUID | None = None


class CancelRequest(BaseModel):
    reason: str | None = None


class StatusUpdate(BaseModel):
    status: str


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

class ServicePlanCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None
    price: float = Field(..., ge=0)
    billing_cycle: Literal["weekly", "monthly", "yearly", "one-time"] = "monthly"
    features: list[str] | None = None
    patient_limit: int | None = Field(None, ge=1)
    trial_period_days: int = Field(0, ge=0)
    setup_fee: float = Field(0, ge=0)


class ServicePlanUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    price: float | None = Field(None, ge=0)
    features: list[str] | None = None
    patient_limit: int | None = None
    is_active: bool | None = None


class ServicePlanResponse(ORMModel):
    id: UUID
    provider_id: UUID
    name: str
    description: str | None = None
    price: float
    billing_cycle: str
    features: list[Any] | None = None
    patient_limit: int | None = None
    trial_period_days: int
    setup_fee: float
    is_active: bool
    created_at: datetime


class SubscriptionCreate(BaseModel):
    patient_id: UUID
    plan_id: UUID
    payment_method_id: UUID | None = None
    gateway_subscription_id: str | None = None


class SubscriptionCancel(BaseModel):
    reason: str | None = None
    at_period_end: bool = True


class SubscriptionResponse(ORMModel):
    id: UUID
    patient_id: UUID
    provider_id: UUID
    service_plan_id: UUID
    payment_method_id: UUID | None = None
    status: str
    current_period_start: date
    current_period_end: date
    next_billing_date: date | None = None
    trial_start: date | None = None
    trial_end: date | None = None
    cancelled_at: datetime | None = None
    last_payment_date: datetime | None = None
    last_payment_amount: float | None = None
    failure_count: int
    extra: dict[str, Any] | None = Field(None, serialization_alias="metadata")


class PaymentMethodCreate(BaseModel):
    patient_id: UUID
    type: Literal["card", "bank_account"] = "card"
    gateway_reference: str | None = None
    card_brand: str | None = None
    card_last4: str | None = Field(None, pattern=r"^\d{4}$")
    card_exp_month: int | None = Field(None, ge=1, le=12)
    card_exp_year: int | None = None
    bank_name: str | None = None
    bank_last4: str | None = Field(None, pattern=r"^\d{4}$")
    is_default: bool = False


class PaymentMethodResponse(ORMModel):
    id: UUID
    patient_id: UUID
    type: str
    card_brand: str | None = None
    card_last4: str | None = None
    bank_name: str | None = None
    bank_last4: str | None = None
    is_default: bool


class PaymentRequest(BaseModel):
    amount: float = Field(..., gt=0)
    payment_method_id: UUID | None = None


class PaymentResponse(ORMModel):
    id: UUID
    subscription_id: UUID | None = None
    amount: float
    currency: str
    status: str
    processed_at: datetime | None = None


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------

class AssignmentCreate(BaseModel):
    patient_id: UUID
    doctor_id: UUID
    assignment_type: str
    reason: str | None = None
    specialty_focus: list[str] | None = None
    care_plan_ids: list[str] | None = None
    notes: str | None = None


class OtpResponse(BaseModel):
    assignment_id: UUID
    otp_code: str
    expires_at: datetime
    max_attempts: int


class OtpVerifyRequest(BaseModel):
    otp_code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")


# ---------------------------------------------------------------------------
# Vitals
# ---------------------------------------------------------------------------

class VitalTypeCreate(BaseModel):
    name: str
    unit: str
    normal_min: float | None = None
    normal_max: float | None = None
    critical_min: float | None = None
    critical_max: float | None = None
    description: str | None = None


class VitalTypeResponse(ORMModel):
    id: UUID
    name: str
    unit: str
    normal_min: float | None = None
    normal_max: float | None = None
    critical_min: float | None = None
    critical_max: float | None = None


class VitalReadingCreate(BaseModel):
    patient_id: UUID
    vital_type_id: UUID
    value: float
    reading_time: datetime | None = None
    notes: str | None = None


class VitalReadingResponse(ORMModel):
    id: UUID
    patient_id: UUID
    vital_type_id: UUID
    value: float
    unit: str
    reading_time: datetime
    alert_level: str
    notes: str | None = None


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    org_type: Literal["hospital", "clinic", "practice", "health_system", "telehealth"] = "clinic"
    hipaa_covered_entity: bool = False


class BaaRequest(BaseModel):
    signed_at: datetime | None = None
    expires_at: datetime | None = None


class AuditLogResponse(ORMModel):
    id: UUID
    actor: str
    user_role: str | None = None
    action: str
    resource_type: str
    resource_id: UUID | None = None
    patient_id: UUID | None = None
    ip_address: str | None = None
    request_id: str | None = None
    phi_accessed: bool
    access_granted: bool
    denial_reason: str | None = None
    timestamp: datetime


class TaskSummary(BaseModel):
    status: str
    duration_ms: float | None = None
    error: str | None = None


class MaintenanceRunResponse(ORMModel):
    id: UUID
    pipeline_name: str
    status: str
    started_at: datetime | None = None
    completed_at: datetime | None = None
    affected_rows: int
    tasks: dict[str, TaskSummary]
    record_counts: dict[str, int] = {}
