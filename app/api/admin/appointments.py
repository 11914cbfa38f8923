# Staff appointment management: listing, status changes, erasure
from flask import Blueprint, jsonify, request

from app.models import AppointmentStatus
from app.services import appointments as appointment_service
from app.services import history
from app.utils.timezone import parse_date

admin_appointments_bp = Blueprint(
    "admin_appointments", __name__, url_prefix="/api/admin/appointments"
)


def _bad_request(message):
    return jsonify({"success": False, "error": "VALIDATION_ERROR", "message": message}), 400


def _optional_date(name):
    value = request.args.get(name)
    return parse_date(value) if value else None


@admin_appointments_bp.route("", methods=["GET"])
def list_appointments():
    """
    List appointments
    ---
    tags:
      - Admin
    parameters:
      - {in: query, name: status, type: string, required: false}
      - {in: query, name: date, type: string, required: false}
      - {in: query, name: start_date, type: string, required: false}
      - {in: query, name: end_date, type: string, required: false}
      - {in: query, name: limit, type: integer, required: false}
      - {in: query, name: offset, type: integer, required: false}
      - {in: query, name: email, type: string, required: false, description: All appointments for one client}
    responses:
      200:
        description: Appointments, newest date and time first, plus the unpaged total
      400:
        description: Bad filter value
    """
    email = request.args.get("email")
    if email:
        results = appointment_service.get_appointments_by_email(email)
        return jsonify(
            {
                "success": True,
                "appointments": [appointment.to_dict() for appointment in results],
                "total": len(results),
            }
        )

    status = request.args.get("status")
    if status and status not in {s.value for s in AppointmentStatus}:
        return _bad_request(f"Unknown status: {status}")

    try:
        filters = {
            "status": status,
            "on_date": _optional_date("date"),
            "start_date": _optional_date("start_date"),
            "end_date": _optional_date("end_date"),
        }
    except ValueError:
        return _bad_request("Dates must be YYYY-MM-DD")

    limit = request.args.get("limit", default=50, type=int)
    offset = request.args.get("offset", default=0, type=int)
    if limit < 1 or offset < 0:
        return _bad_request("limit must be positive and offset must not be negative")

    results = appointment_service.list_appointments(limit=limit, offset=offset, **filters)
    total = appointment_service.count_appointments(**filters)

    return jsonify(
        {
            "success": True,
            "appointments": [appointment.to_dict() for appointment in results],
            "total": total,
            "limit": limit,
            "offset": offset,
        }
    )


@admin_appointments_bp.route("/stats", methods=["GET"])
def get_stats():
    """
    Appointment counts by status, today and upcoming
    ---
    tags:
      - Admin
    responses:
      200:
        description: Statistics
    """
    return jsonify({"success": True, "stats": appointment_service.appointment_stats()})


@admin_appointments_bp.route("/<int:appointment_id>", methods=["GET"])
def get_appointment(appointment_id):
    """
    One appointment with its full history
    ---
    tags:
      - Admin
    parameters:
      - {in: path, name: appointment_id, type: integer, required: true}
    responses:
      200:
        description: Appointment and history, oldest entry first
      404:
        description: NOT_FOUND
    """
    appointment = appointment_service.get_appointment(appointment_id)
    entries = history.get_history(appointment_id)
    return jsonify(
        {
            "success": True,
            "appointment": appointment.to_dict(),
            "history": [entry.to_dict() for entry in entries],
        }
    )


@admin_appointments_bp.route("/<int:appointment_id>/status", methods=["PUT"])
def update_status(appointment_id):
    """
    Change an appointment's status
    ---
    tags:
      - Admin
    parameters:
      - {in: path, name: appointment_id, type: integer, required: true}
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - status
          properties:
            status:
              type: string
              enum: [confirmed, declined, cancelled, completed]
            decline_reason:
              type: string
            notes:
              type: string
    responses:
      200:
        description: Updated appointment (version incremented)
      400:
        description: INVALID_TRANSITION or MISSING_REASON
      404:
        description: NOT_FOUND
      409:
        description: CONCURRENT_MODIFICATION
    """
    data = request.get_json(silent=True) or {}
    new_status = data.get("status")
    if not new_status:
        return _bad_request("status is required")

    appointment = appointment_service.transition(
        appointment_id,
        new_status,
        reason=data.get("decline_reason"),
        notes=data.get("notes"),
    )
    return jsonify({"success": True, "appointment": appointment.to_dict()})


@admin_appointments_bp.route("/<int:appointment_id>", methods=["DELETE"])
def delete_appointment(appointment_id):
    """
    Permanently delete an appointment and its history
    ---
    tags:
      - Admin
    parameters:
      - {in: path, name: appointment_id, type: integer, required: true}
    responses:
      200:
        description: Deleted
      404:
        description: NOT_FOUND
    """
    appointment_service.delete_appointment(appointment_id)
    return jsonify({"success": True, "message": "Appointment deleted"})
