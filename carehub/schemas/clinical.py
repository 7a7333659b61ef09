"""
JSON schemas for structured clinical and billing payloads.

These guard the JSON columns (goals, monitoring parameters, care team,
allergies, history) and the billing gateway notifications. Pydantic
covers the flat request bodies; these cover the free-form parts.
"""

LONG_TERM_GOALS_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Care plan long-term goals",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["description"],
        "properties": {
            "description": {"type": "string", "minLength": 1},
            "target_date": {"type": "string", "pattern": "^\\d{4}-\\d{2}-\\d{2}$"},
            "status": {
                "type": "string",
                "enum": ["not_started", "in_progress", "achieved", "abandoned"],
            },
            "measure": {"type": "string"},
        },
    },
}


MONITORING_PARAMETERS_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Care plan monitoring parameters",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["parameter", "frequency"],
        "properties": {
            "parameter": {"type": "string", "minLength": 1},
            "frequency": {
                "type": "string",
                "enum": ["daily", "twice_daily", "weekly", "monthly", "quarterly"],
            },
            "target_min": {"type": "number"},
            "target_max": {"type": "number"},
            "unit": {"type": "string"},
        },
    },
}


CARE_TEAM_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Care team members",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["id", "type", "role"],
        "properties": {
            "id": {"type": "string", "minLength": 1},
            "type": {"type": "string", "enum": ["doctor", "hsp"]},
            "role": {"type": "string", "minLength": 1},
        },
    },
}


ALLERGIES_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Patient allergies",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["allergen", "severity"],
        "properties": {
            "allergen": {"type": "string", "minLength": 1},
            "severity": {"type": "string", "enum": ["MILD", "MODERATE", "SEVERE"]},
            "reaction": {"type": "string"},
        },
    },
}


MEDICAL_HISTORY_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Patient medical history",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["condition"],
        "properties": {
            "condition": {"type": "string", "minLength": 1},
            "diagnosed_date": {"type": "string", "pattern": "^\\d{4}-\\d{2}-\\d{2}$"},
            "status": {"type": "string", "enum": ["ACTIVE", "RESOLVED", "CHRONIC"]},
        },
    },
}


BILLING_EVENT_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Payment gateway notification",
    "description": "Invoice and subscription lifecycle events pushed by the gateway.",
    "type": "object",
    "required": ["type", "data"],
    "properties": {
        "id": {"type": "string"},
        "type": {"type": "string", "minLength": 1},
        "data": {
            "type": "object",
            "required": ["object"],
            "properties": {
                "object": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "subscription": {"type": "string"},
                        "amount_paid": {"type": "integer", "minimum": 0},
                        "amount_due": {"type": "integer", "minimum": 0},
                        "failure_code": {"type": "string"},
                        "failure_message": {"type": "string"},
                    },
                }
            },
        },
    },
}
