"""
Field Visit Service - Application Package

- api/: HTTP route handlers (Flask Blueprints)

The app factory and core Flask setup live in app_init.py at the project
root; business logic lives in the services package.
"""

import logging

logger = logging.getLogger(__name__)

from app.api.field_visit import field_visit_bp


def register_blueprints(app):
    """
    Register all API blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(field_visit_bp)
    logger.info("✅ Registered blueprints: field_visit")
