# Operator tools for the notification queue
from flask import Blueprint, current_app, jsonify, request

from app.services import notification_queue

notifications_bp = Blueprint(
    "notifications", __name__, url_prefix="/api/admin/notifications"
)


@notifications_bp.route("/stats", methods=["GET"])
def get_queue_stats():
    """
    Notification queue statistics
    ---
    tags:
      - Notifications
    responses:
      200:
        description: Counts by status, total and failures in the last 24 hours
    """
    return jsonify({"success": True, "stats": notification_queue.queue_stats()})


@notifications_bp.route("/retry-failed", methods=["POST"])
def retry_failed():
    """
    Reset failed notifications to pending
    ---
    tags:
      - Notifications
    parameters:
      - in: body
        name: body
        required: false
        schema:
          type: object
          properties:
            limit:
              type: integer
              description: Only reset the most recent N failures
    responses:
      200:
        description: Number of notifications reset
      400:
        description: Invalid limit
    """
    data = request.get_json(silent=True) or {}
    limit = data.get("limit")
    if limit is not None and (not isinstance(limit, int) or limit < 1):
        return (
            jsonify(
                {"success": False, "error": "VALIDATION_ERROR", "message": "limit must be a positive integer"}
            ),
            400,
        )

    reset = notification_queue.reset_failed(limit)
    return jsonify({"success": True, "reset": reset})


@notifications_bp.route("/purge", methods=["POST"])
def purge():
    """
    Delete sent and failed notifications older than the retention window
    ---
    tags:
      - Notifications
    parameters:
      - in: body
        name: body
        required: false
        schema:
          type: object
          properties:
            days:
              type: integer
    responses:
      200:
        description: Number of notifications deleted
      400:
        description: Invalid days
    """
    data = request.get_json(silent=True) or {}
    days = data.get("days", current_app.config["NOTIFICATION_RETENTION_DAYS"])
    if not isinstance(days, int) or days < 1:
        return (
            jsonify(
                {"success": False, "error": "VALIDATION_ERROR", "message": "days must be a positive integer"}
            ),
            400,
        )

    deleted = notification_queue.purge_old(days)
    return jsonify({"success": True, "deleted": deleted})
