# Outbound e-mail channel for queued notifications
import logging
from html import escape, unescape
from typing import Dict

import resend

logger = logging.getLogger(__name__)


def escape_payload(payload: Dict) -> Dict:
    """HTML-escape every string value; payloads carry client-typed text."""
    return {
        key: escape(value, quote=True) if isinstance(value, str) else value
        for key, value in payload.items()
    }


class EmailService:
    """
    Centralized email service using Resend.

    ``send`` is the channel the notification queue dispatches through: it
    takes a NotificationTask and reports ``{"success": bool, ...}`` instead of
    raising.
    """

    def __init__(self, api_key=None, from_email=None, frontend_url=None, disabled=False):
        """Initialize Resend with API key"""
        self.api_key = api_key
        self.from_email = from_email or "onboarding@resend.dev"
        self.frontend_url = frontend_url or "http://localhost:3000"
        self.disabled = disabled or not api_key

        if self.disabled:
            logger.warning("EmailService running without RESEND_API_KEY; delivery disabled")
            return

        resend.api_key = self.api_key

    @classmethod
    def from_config(cls, config) -> "EmailService":
        return cls(
            api_key=config.get("RESEND_API_KEY"),
            from_email=config.get("RESEND_FROM_EMAIL"),
            frontend_url=config.get("FRONTEND_URL"),
            disabled=bool(config.get("TESTING")),
        )

    def send(self, task) -> Dict:
        handlers = {
            "booking-confirmation": self.send_booking_confirmation,
            "admin-notification": self.send_admin_notification,
            "appointment-confirmed": self.send_appointment_confirmed,
            "appointment-declined": self.send_appointment_declined,
            "cancellation-confirmation": self.send_cancellation_confirmation,
        }
        handler = handlers.get(task.type)
        if handler is None:
            return {"success": False, "error": f"Unknown notification type: {task.type}"}
        return handler(task.recipient, escape_payload(task.payload or {}))

    def _deliver(self, to_email: str, subject: str, html: str) -> Dict:
        if self.disabled:
            logger.info("Email delivery disabled; skipping '%s'", subject)
            return {"success": True, "message": "Email delivery disabled"}

        try:
            params = {
                "from": self.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html,
            }
            email_response = resend.Emails.send(params)

            return {
                "success": True,
                "message": "Email sent successfully",
                "email_id": email_response.get("id"),
            }

        except Exception as e:
            return {"success": False, "error": str(e)}

    def _cancel_link(self, appointment: Dict) -> str:
        return f"{self.frontend_url}/cancel/{appointment.get('cancellation_token', '')}"

    @staticmethod
    def _details(appointment: Dict) -> str:
        return f"""
            <p><strong>Date:</strong> {appointment.get('appointment_date')}</p>
            <p><strong>Time:</strong> {appointment.get('appointment_time')}</p>
            <p><strong>Service:</strong> {appointment.get('service_type')}</p>
        """

    def send_booking_confirmation(self, to_email, appointment):
        """Sent right after booking: the request is received and awaiting approval"""
        html = f"""
        <html>
            <body>
                <h2>We received your appointment request</h2>
                <p>Hi {appointment.get('client_name')},</p>
                <p>Your request is pending approval. We'll email you once it is confirmed.</p>
                {self._details(appointment)}
                <p>Need to cancel? <a href="{self._cancel_link(appointment)}">Cancel your appointment</a></p>
            </body>
        </html>
        """
        return self._deliver(to_email, "Appointment request received", html)

    def send_admin_notification(self, to_email, appointment):
        html = f"""
        <html>
            <body>
                <h2>New appointment request</h2>
                <p><strong>Client:</strong> {appointment.get('client_name')}
                   ({appointment.get('client_email')}, {appointment.get('client_phone')})</p>
                {self._details(appointment)}
                <p><strong>Notes:</strong> {appointment.get('notes') or '-'}</p>
            </body>
        </html>
        """
        subject = (
            # subjects are plain text
            f"New appointment: {unescape(appointment.get('client_name') or '')} - "
            f"{appointment.get('appointment_date')}"
        )
        return self._deliver(to_email, subject, html)

    def send_appointment_confirmed(self, to_email, appointment):
        html = f"""
        <html>
            <body>
                <h2>Appointment Confirmed</h2>
                <p>Hi {appointment.get('client_name')}, your appointment is confirmed.</p>
                {self._details(appointment)}
                <p>Can't make it? <a href="{self._cancel_link(appointment)}">Cancel your appointment</a></p>
            </body>
        </html>
        """
        return self._deliver(to_email, "Your appointment is confirmed", html)

    def send_appointment_declined(self, to_email, appointment):
        html = f"""
        <html>
            <body>
                <h2>Appointment update</h2>
                <p>Hi {appointment.get('client_name')}, unfortunately we can't accept your request.</p>
                {self._details(appointment)}
                <p><strong>Reason:</strong> {appointment.get('decline_reason')}</p>
            </body>
        </html>
        """
        return self._deliver(to_email, "Update on your appointment request", html)

    def send_cancellation_confirmation(self, to_email, appointment):
        html = f"""
        <html>
            <body>
                <h2>Appointment Cancelled</h2>
                <p>Hi {appointment.get('client_name')}, your appointment has been cancelled.</p>
                {self._details(appointment)}
            </body>
        </html>
        """
        return self._deliver(to_email, "Your appointment has been cancelled", html)
