# Public slot availability lookups
from flask import Blueprint, jsonify, request

from app.services import availability
from app.utils.timezone import format_time, parse_date, parse_time

availability_bp = Blueprint("availability", __name__, url_prefix="/api/availability")


def _bad_request(message):
    return jsonify({"success": False, "error": "VALIDATION_ERROR", "message": message}), 400


@availability_bp.route("/dates", methods=["GET"])
def get_available_dates():
    """
    Dates with at least one free slot
    ---
    tags:
      - Availability
    parameters:
      - in: query
        name: days
        type: integer
        required: false
        description: Look-ahead window in days (defaults to the booking window)
    responses:
      200:
        description: List of {date, day_of_week, available_slots}
    """
    days = request.args.get("days", type=int)
    if days is not None and (days < 1 or days > availability.booking_window_days()):
        return _bad_request(
            f"days must be between 1 and {availability.booking_window_days()}"
        )

    dates = availability.available_dates(days)
    return jsonify({"success": True, "dates": dates})


@availability_bp.route("/slots/<date_str>", methods=["GET"])
def get_available_slots(date_str):
    """
    Free slots on one date
    ---
    tags:
      - Availability
    parameters:
      - in: path
        name: date_str
        type: string
        required: true
        description: YYYY-MM-DD
    responses:
      200:
        description: Ordered slot start times; empty for blocked or closed days
      400:
        description: Invalid date
    """
    try:
        day = parse_date(date_str)
    except ValueError:
        return _bad_request("Use YYYY-MM-DD for the date")

    slots = availability.available_slots(day)
    return jsonify(
        {
            "success": True,
            "date": day.isoformat(),
            "available_slots": [format_time(slot) for slot in slots],
        }
    )


@availability_bp.route("/check", methods=["POST"])
def check_slot():
    """
    Check whether a slot is currently free
    ---
    tags:
      - Availability
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            date:
              type: string
            time:
              type: string
    responses:
      200:
        description: "{available: bool}"
      400:
        description: Invalid date or time
    """
    data = request.get_json(silent=True) or {}
    try:
        day = parse_date(data.get("date") or "")
        slot = parse_time(data.get("time") or "")
    except (ValueError, TypeError):
        return _bad_request("date (YYYY-MM-DD) and time (HH:MM) are required")

    return jsonify(
        {
            "success": True,
            "date": day.isoformat(),
            "time": format_time(slot),
            "available": availability.is_slot_available(day, slot),
        }
    )


@availability_bp.route("/next", methods=["GET"])
def get_next_available():
    """
    Earliest free slot in the booking window
    ---
    tags:
      - Availability
    responses:
      200:
        description: "{date, time} or null"
    """
    found = availability.next_available_slot()
    if found is None:
        return jsonify({"success": True, "next": None})

    day, slot = found
    return jsonify(
        {"success": True, "next": {"date": day.isoformat(), "time": format_time(slot)}}
    )
