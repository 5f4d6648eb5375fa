"""
Security Utilities & Middleware
CORS, response headers, JSON error handlers, request logging and the
optional device API key
"""
import secrets
from functools import wraps
from typing import Any, Callable, Dict

from flask import Flask, Response, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
import logging

from services.backend_client import GatewayError
from validators import ValidationError

logger = logging.getLogger(__name__)

# status polling and health checks
QUIET_PATHS = ['/health', '/ready', '/api/field-visit/session']


def setup_security_headers(app: Flask):
    """
    Add hardening headers to every response

    Args:
        app: Flask application instance
    """
    @app.after_request
    def add_security_headers(response: Response) -> Response:
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'no-referrer'
        # session status changes every second; never cache it
        response.headers['Cache-Control'] = 'no-store'
        if not app.debug:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response


def setup_cors(app: Flask, config: Dict[str, Any]):
    """
    Allow the technician client's origin(s) to call the API

    Args:
        app: Flask application instance
        config: Application configuration dictionary
    """
    origins = config.get('CORS_ORIGINS', ['*'])
    if not app.debug and '*' in origins:
        logger.warning("⚠️  Wildcard CORS outside debug mode, set CORS_ORIGINS")

    CORS(
        app,
        origins=origins,
        methods=config.get('CORS_METHODS'),
        allow_headers=list(config.get('CORS_ALLOW_HEADERS', [])) + ['X-API-Key'],
        max_age=3600,
    )
    logger.info(f"CORS origins: {origins}")


def require_api_key(f: Callable) -> Callable:
    """
    Decorator checking X-API-Key against DEVICE_API_KEY.

    When no key is configured the endpoint is open.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected_key = current_app.config.get('DEVICE_API_KEY')
        if not expected_key:
            return f(*args, **kwargs)

        supplied = request.headers.get('X-API-Key')
        if not supplied:
            logger.warning(f"Missing API key for {request.path}")
            return jsonify({'success': False, 'error': 'API key required'}), 401
        if not secrets.compare_digest(supplied, expected_key):
            logger.warning(f"Invalid API key for {request.path}")
            return jsonify({'success': False, 'error': 'Invalid API key'}), 403

        return f(*args, **kwargs)

    return decorated_function


def internal_error_body(error: Exception, include_details: bool = False) -> Dict[str, Any]:
    """
    Body for an unhandled exception; details only in debug mode

    Args:
        error: The exception
        include_details: Add exception text and type

    Returns:
        JSON-serializable dict
    """
    body = {
        'success': False,
        'error': 'Internal Server Error',
        'message': 'Something went wrong while handling the request',
    }
    if include_details:
        body['details'] = str(error)
        body['type'] = type(error).__name__
    return body


def setup_error_handlers(app: Flask):
    """
    Register JSON error handlers

    Args:
        app: Flask application instance
    """
    @app.errorhandler(ValidationError)
    def validation_error(error):
        body = {'success': False, 'error': error.message}
        if error.field:
            body['field'] = error.field
        return jsonify(body), 400

    @app.errorhandler(GatewayError)
    def gateway_error(error):
        logger.error(f"Backend error: {error.message}")
        return jsonify({'success': False, 'error': error.message}), 502

    @app.errorhandler(HTTPException)
    def http_error(error):
        """404/405/409/... as JSON; 409 carries the mode conflict reason"""
        return jsonify({
            'success': False,
            'error': error.name,
            'message': error.description,
        }), error.code

    @app.errorhandler(500)
    def internal_server_error(error):
        logger.error(f"Internal server error: {error}", exc_info=True)
        return jsonify(internal_error_body(error, app.debug)), 500


def setup_request_logging(app: Flask):
    """
    Log each request and its status, except noisy polling paths

    Args:
        app: Flask application instance
    """
    @app.before_request
    def log_request():
        if request.path not in QUIET_PATHS:
            logger.info(f"Request: {request.method} {request.path} from {request.remote_addr}")

    @app.after_request
    def log_response(response: Response) -> Response:
        if request.path not in QUIET_PATHS:
            logger.info(f"Response: {request.method} {request.path} status={response.status_code}")
        return response


def setup_security(app: Flask, config: Dict[str, Any]):
    """
    Setup CORS, headers, error handlers and request logging

    Args:
        app: Flask application instance
        config: Application configuration dictionary
    """
    setup_cors(app, config)
    setup_security_headers(app)
    setup_error_handlers(app)
    setup_request_logging(app)

    if not app.debug and not config.get('DEVICE_API_KEY'):
        logger.warning("DEVICE_API_KEY is not set, field visit endpoints are open")

    logger.info("✅ Security configuration complete")
