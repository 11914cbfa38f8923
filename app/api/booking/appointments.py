# Book, look up and cancel appointments (public, client-facing)
from flask import Blueprint, jsonify, request

from app.services import appointments as appointment_service
from app.services.appointments import BookingDetails
from app.utils.timezone import parse_date, parse_time

appointments_bp = Blueprint("appointments", __name__, url_prefix="/api/appointments")

REQUIRED_FIELDS = [
    "appointment_date",
    "appointment_time",
    "client_name",
    "client_email",
    "client_phone",
    "service_type",
]


@appointments_bp.route("", methods=["POST"])
def create_appointment():
    """
    Request an appointment slot
    ---
    tags:
      - Appointments
    summary: Reserve a slot; the appointment starts out pending
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - appointment_date
            - appointment_time
            - client_name
            - client_email
            - client_phone
            - service_type
          properties:
            appointment_date:
              type: string
              example: "2026-11-02"
            appointment_time:
              type: string
              example: "10:00"
            client_name:
              type: string
            client_email:
              type: string
            client_phone:
              type: string
            service_type:
              type: string
            notes:
              type: string
    responses:
      201:
        description: Appointment created with status pending
      400:
        description: Missing fields or the time is not an offered slot
      409:
        description: SLOT_ALREADY_BOOKED
    """
    data = request.get_json(silent=True) or {}

    missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
    if missing:
        return (
            jsonify(
                {
                    "success": False,
                    "error": "VALIDATION_ERROR",
                    "message": f'Missing required fields: {", ".join(missing)}',
                }
            ),
            400,
        )

    try:
        appointment_date = parse_date(data["appointment_date"])
        appointment_time = parse_time(data["appointment_time"])
    except (ValueError, TypeError):
        return (
            jsonify(
                {
                    "success": False,
                    "error": "VALIDATION_ERROR",
                    "message": "Use YYYY-MM-DD for appointment_date and HH:MM for appointment_time",
                }
            ),
            400,
        )

    details = BookingDetails(
        client_name=data["client_name"],
        client_email=data["client_email"],
        client_phone=data["client_phone"],
        service_type=data["service_type"],
        notes=data.get("notes"),
    )
    appointment = appointment_service.reserve_slot(appointment_date, appointment_time, details)

    return (
        jsonify(
            {
                "success": True,
                "message": "Appointment request received",
                "appointment": appointment.to_public_dict(),
            }
        ),
        201,
    )


@appointments_bp.route("/<token>", methods=["GET"])
def get_appointment(token):
    """
    Look up an appointment by its cancellation token
    ---
    tags:
      - Appointments
    parameters:
      - in: path
        name: token
        type: string
        required: true
    responses:
      200:
        description: Client-safe view of the appointment
      404:
        description: NOT_FOUND
    """
    appointment = appointment_service.get_appointment_by_token(token)
    return jsonify({"success": True, "appointment": appointment.to_public_dict()})


@appointments_bp.route("/<token>/cancel", methods=["POST"])
def cancel_appointment(token):
    """
    Cancel an appointment using its cancellation token
    ---
    tags:
      - Appointments
    parameters:
      - in: path
        name: token
        type: string
        required: true
    responses:
      200:
        description: Appointment cancelled
      400:
        description: ALREADY_CANCELLED or CANNOT_CANCEL
      404:
        description: NOT_FOUND
      409:
        description: CONCURRENT_MODIFICATION
    """
    appointment = appointment_service.cancel(token)
    return jsonify(
        {
            "success": True,
            "message": "Appointment cancelled",
            "appointment": appointment.to_public_dict(),
        }
    )
