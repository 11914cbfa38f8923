"""
Swagger/OpenAPI configuration for the Appointment Booking API
"""

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec",
            "route": "/apispec.json",
            "rule_filter": lambda rule: True,
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/api/docs",
}

SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "Appointment Booking API",
        "description": "Slot availability, appointment requests with staff approval, and queued email notifications",
        "version": "1.0.0",
    },
    "host": "",
    "basePath": "/",
    "schemes": ["http", "https"],
    "tags": [
        {"name": "Availability", "description": "Bookable dates and slots"},
        {"name": "Appointments", "description": "Client booking, lookup and cancellation"},
        {"name": "Admin", "description": "Staff appointment management"},
        {"name": "Notifications", "description": "Notification queue operations"},
    ],
    "definitions": {
        "Error": {
            "type": "object",
            "properties": {
                "success": {"type": "boolean", "example": False},
                "error": {"type": "string", "example": "SLOT_ALREADY_BOOKED"},
                "message": {"type": "string"},
                "details": {"type": "object"},
            },
        },
        "PublicAppointment": {
            "type": "object",
            "properties": {
                "client_name": {"type": "string"},
                "appointment_date": {"type": "string", "example": "2026-11-02"},
                "appointment_time": {"type": "string", "example": "10:00"},
                "service_type": {"type": "string"},
                "status": {
                    "type": "string",
                    "enum": ["pending", "confirmed", "declined", "cancelled", "completed"],
                },
                "decline_reason": {"type": "string"},
                "cancellation_token": {"type": "string"},
                "created_at": {"type": "string"},
            },
        },
        "HistoryEntry": {
            "type": "object",
            "properties": {
                "old_status": {"type": "string"},
                "new_status": {"type": "string"},
                "changed_by": {"type": "string", "enum": ["client", "admin", "system"]},
                "changed_at": {"type": "string"},
                "notes": {"type": "string"},
            },
        },
    },
}
