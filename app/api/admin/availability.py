# Staff views of the schedule configuration and slot utilization
from flask import Blueprint, jsonify

from app.services import availability

admin_availability_bp = Blueprint(
    "admin_availability", __name__, url_prefix="/api/admin/availability"
)


@admin_availability_bp.route("/schedule", methods=["GET"])
def get_schedule():
    """
    Weekly schedule (0=Sunday ... 6=Saturday)
    ---
    tags:
      - Admin
    responses:
      200:
        description: Seven schedule entries
    """
    entries = availability.get_weekly_schedule()
    return jsonify({"success": True, "schedule": [entry.to_dict() for entry in entries]})


@admin_availability_bp.route("/blocked-dates", methods=["GET"])
def get_blocked_dates():
    """
    Active blocked dates
    ---
    tags:
      - Admin
    responses:
      200:
        description: Blocked dates ordered by date
    """
    blocked = availability.get_blocked_dates()
    return jsonify({"success": True, "blocked_dates": [b.to_dict() for b in blocked]})


@admin_availability_bp.route("/stats", methods=["GET"])
def get_stats():
    """
    Slot utilization over the booking window
    ---
    tags:
      - Admin
    responses:
      200:
        description: total, booked and available slots with utilization percentage
    """
    return jsonify({"success": True, "stats": availability.availability_stats()})
