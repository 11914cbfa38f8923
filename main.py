from app.api.admin.appointments import admin_appointments_bp
from app.api.admin.availability import admin_availability_bp
from app.api.booking.appointments import appointments_bp
from app.api.booking.availability import availability_bp
from app.api.communication.notifications import notifications_bp
from flask import Flask, jsonify
from flask_cors import CORS
from dotenv import load_dotenv
from flasgger import Swagger
from swagger__config import SWAGGER_CONFIG, SWAGGER_TEMPLATE
import logging
import os

load_dotenv()
from app.config import Config  # noqa: E402
from app.errors import BookingError  # noqa: E402
from app.extensions import db  # noqa: E402
from app.scheduler import init_scheduler  # noqa: E402
from app.services.email_service import EmailService  # noqa: E402
from app.utils.logging import configure_logging  # noqa: E402

logger = logging.getLogger(__name__)

BLUEPRINTS = [
    availability_bp,
    appointments_bp,
    admin_appointments_bp,
    admin_availability_bp,
    notifications_bp,
]


def register_error_handlers(app):
    @app.errorhandler(BookingError)
    def handle_booking_error(error):
        return jsonify(error.to_dict()), error.status_code


def create_app(config_overrides=None, channel=None):
    """
    Build the Flask app.

    ``channel`` replaces the e-mail channel the notification sweep sends
    through; anything with ``send(task) -> {"success": bool, ...}`` works.
    """
    configure_logging()
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    CORS(app)
    db.init_app(app)

    app.extensions["notification_channel"] = channel or EmailService.from_config(app.config)

    # Determine host based on environment
    host = os.environ.get("API_HOST", "127.0.0.1:5000")
    swagger_template = SWAGGER_TEMPLATE.copy()
    swagger_template["host"] = host
    Swagger(app, config=SWAGGER_CONFIG, template=swagger_template)

    for bp in BLUEPRINTS:
        app.register_blueprint(bp)
        logger.debug("Blueprint %s registered", bp.name)

    register_error_handlers(app)

    @app.route("/")
    def home():
        """
        Root endpoint - API status
        ---
        tags:
          - Utility
        responses:
          200:
            description: API is running
        """
        return {"status": "ok", "message": "Backend is running!"}, 200

    if app.config.get("NOTIFICATION_DISPATCH_ENABLED") and not app.config.get("TESTING"):
        init_scheduler(app)

    logger.info("Application created with %s blueprints", len(BLUEPRINTS))
    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    # the reloader would start a second scheduler
    app.run(
        host="0.0.0.0",
        port=port,
        debug=os.environ.get("FLASK_ENV") != "production",
        use_reloader=False,
    )
