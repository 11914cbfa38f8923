"""
Typed outcomes for the booking core.

Services raise these; the blueprints turn them into JSON responses through a
single error handler registered in main.create_app.
"""


class BookingError(Exception):
    code = "BOOKING_ERROR"
    status_code = 400
    message = "The request could not be completed."

    def __init__(self, message=None, **details):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.details = details

    def to_dict(self):
        payload = {"success": False, "error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


# Conflicts: expected under contention, retry with fresh data or another slot
class SlotAlreadyBooked(BookingError):
    code = "SLOT_ALREADY_BOOKED"
    status_code = 409
    message = "This time slot is already booked. Please choose another time."


class ConcurrentModification(BookingError):
    code = "CONCURRENT_MODIFICATION"
    status_code = 409
    message = "The appointment was changed by someone else. Reload and try again."


# Not found
class AppointmentNotFound(BookingError):
    code = "NOT_FOUND"
    status_code = 404
    message = "Appointment not found."


# Caller errors: rejected before any write
class AlreadyCancelled(BookingError):
    code = "ALREADY_CANCELLED"
    message = "This appointment has already been cancelled."


class CannotCancel(BookingError):
    code = "CANNOT_CANCEL"
    message = "This appointment can no longer be cancelled."


class InvalidTransition(BookingError):
    code = "INVALID_TRANSITION"
    message = "This status change is not allowed."


class MissingDeclineReason(BookingError):
    code = "MISSING_REASON"
    message = "A reason is required when declining an appointment."


class SlotUnavailable(BookingError):
    code = "SLOT_UNAVAILABLE"
    message = "The requested time is not an available slot."
