"""Enumerations shared by models, schemas and services.

Values are stored as plain strings so the same tables work on PostgreSQL
and SQLite.
"""

from enum import Enum


class UserRole(str, Enum):
    SYSTEM_ADMIN = "SYSTEM_ADMIN"
    HOSPITAL_ADMIN = "HOSPITAL_ADMIN"
    DOCTOR = "DOCTOR"
    HSP = "HSP"
    PATIENT = "PATIENT"
    CAREGIVER = "CAREGIVER"


ADMIN_ROLES = (UserRole.SYSTEM_ADMIN, UserRole.HOSPITAL_ADMIN)
PROVIDER_ROLES = (UserRole.DOCTOR, UserRole.HSP)


class AccountStatus(str, Enum):
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    DEACTIVATED = "DEACTIVATED"


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"
    PREFER_NOT_TO_SAY = "PREFER_NOT_TO_SAY"


class OrganizationType(str, Enum):
    HOSPITAL = "hospital"
    CLINIC = "clinic"
    PRACTICE = "practice"
    HEALTH_SYSTEM = "health_system"
    TELEHEALTH = "telehealth"


class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    RESCHEDULED = "RESCHEDULED"


class PlanStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class EventStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    MISSED = "MISSED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class EventType(str, Enum):
    MEDICATION = "MEDICATION"
    APPOINTMENT = "APPOINTMENT"
    VITAL_CHECK = "VITAL_CHECK"
    SYMPTOM_LOG = "SYMPTOM_LOG"
    DIET_LOG = "DIET_LOG"
    EXERCISE = "EXERCISE"
    REMINDER = "REMINDER"


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    TRIALING = "TRIALING"
    INACTIVE = "INACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class BillingCycle(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    ONE_TIME = "one-time"


class HSPType(str, Enum):
    REGISTERED_NURSE = "registered_nurse"
    LICENSED_PRACTICAL_NURSE = "licensed_practical_nurse"
    NURSE_PRACTITIONER = "nurse_practitioner"
    PHYSICIAN_ASSISTANT = "physician_assistant"
    CLINICAL_PHARMACIST = "clinical_pharmacist"
    CARE_COORDINATOR = "care_coordinator"
    SOCIAL_WORKER = "social_worker"
    DIETITIAN = "dietitian"
    PHYSICAL_THERAPIST = "physical_therapist"
    OCCUPATIONAL_THERAPIST = "occupational_therapist"
    RESPIRATORY_THERAPIST = "respiratory_therapist"
    MEDICAL_ASSISTANT = "medical_assistant"
    OTHER = "other"


class Capability(str, Enum):
    PRESCRIBE_MEDICATIONS = "prescribe_medications"
    ORDER_TESTS = "order_tests"
    DIAGNOSE = "diagnose"
    CREATE_TREATMENT_PLANS = "create_treatment_plans"
    CREATE_CARE_PLANS = "create_care_plans"
    MODIFY_MEDICATIONS = "modify_medications"
    MONITOR_VITALS = "monitor_vitals"
    PATIENT_EDUCATION = "patient_education"
    CARE_COORDINATION = "care_coordination"
    EMERGENCY_RESPONSE = "emergency_response"


class AssignmentType(str, Enum):
    SPECIALIST = "specialist"
    SUBSTITUTE = "substitute"
    TRANSFERRED = "transferred"


class ConsentStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    GRANTED = "granted"
    DENIED = "denied"


class AlertLevel(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
