"""
Application Initialization Module
Initializes the Flask app, its infrastructure and the field visit engine
"""
import os
from flask import Flask
from config import get_config
from logging_config import setup_logging
from security import setup_security
from health_checks import register_health_checks
from services.backend_client import BackendClient
from services.event_logger import EventLogger
from services.field_visit import FieldVisitEngine
import logging

logger = logging.getLogger(__name__)


def create_app(config_class=None, gateway=None, clock=None):
    """
    Application factory

    Args:
        config_class: Configuration class (defaults to get_config())
        gateway: Backend gateway override (tests pass a stub)
        clock: Clock override for the work session timer

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    app.config.from_object(config_class or get_config())

    setup_logging(app)

    logger.info("=" * 60)
    logger.info("🚀 Initializing Field Visit Service")
    logger.info("=" * 60)
    logger.info(f"Environment: {os.environ.get('FLASK_ENV', 'development')}")
    logger.info(f"Debug mode: {app.debug}")

    # Setup security (CORS, headers, error handlers)
    setup_security(app, app.config)

    app.extensions['field_visit'] = initialize_engine(app, gateway=gateway, clock=clock)

    register_health_checks(app)

    from app import register_blueprints
    register_blueprints(app)

    logger.info("✅ Application initialization complete")
    logger.info("=" * 60)

    return app


def initialize_engine(app, gateway=None, clock=None):
    """
    Build the field visit engine for this device

    Args:
        app: Flask application instance
        gateway: Backend gateway; an HTTP BackendClient when None
        clock: Optional clock source

    Returns:
        FieldVisitEngine instance
    """
    if gateway is None:
        gateway = BackendClient(
            app.config['BACKEND_API_URL'],
            timeout=app.config['BACKEND_TIMEOUT'],
        )
        logger.info(f"Backend API: {app.config['BACKEND_API_URL']}")

    engine = FieldVisitEngine(
        gateway,
        clock=clock,
        events=EventLogger(max_events=app.config['EVENT_HISTORY_SIZE']),
        coordinate_scheme=app.config['COORDINATE_SCHEME'],
        sync_station_logs=app.config['SYNC_STATION_LOGS'],
        uploads_url=app.config['UPLOADS_URL'],
    )
    logger.info(f"Field visit engine ready (coordinates: {app.config['COORDINATE_SCHEME']}, "
                f"immediate station logs: {app.config['SYNC_STATION_LOGS']})")
    return engine


def get_engine(app) -> FieldVisitEngine:
    """
    Get the field visit engine from the app

    Args:
        app: Flask application instance

    Returns:
        FieldVisitEngine instance
    """
    engine = app.extensions.get('field_visit')
    if engine is None:
        logger.warning("Field visit engine not initialized, creating new instance")
        engine = initialize_engine(app)
        app.extensions['field_visit'] = engine
    return engine
