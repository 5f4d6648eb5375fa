"""
Liveness, readiness and metrics endpoints for the field visit service
"""
import os
import time
import psutil
from datetime import datetime, timezone
from typing import Any, Dict
from flask import Blueprint, current_app, jsonify
import logging

logger = logging.getLogger(__name__)

SERVICE_NAME = 'field-visit-service'
SERVICE_VERSION = '1.0.0'

health_bp = Blueprint('health', __name__)

# process start, for uptime
START_TIME = time.time()


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_system_metrics() -> Dict[str, Any]:
    """
    Resource usage of this process

    Returns:
        CPU, memory and thread figures; empty dict if psutil cannot read them
    """
    try:
        proc = psutil.Process()
        with proc.oneshot():
            rss = proc.memory_info().rss
            return {
                'cpu_percent': proc.cpu_percent(interval=0.1),
                'memory_mb': round(rss / (1024 * 1024), 2),
                'memory_percent': round(proc.memory_percent(), 2),
                'threads': proc.num_threads(),
            }
    except Exception as e:
        logger.warning(f"Process metrics unavailable: {e}")
        return {}


def get_uptime() -> Dict[str, Any]:
    seconds = time.time() - START_TIME
    return {
        'uptime_seconds': round(seconds, 2),
        'uptime_minutes': round(seconds / 60, 2),
        'started_at': datetime.fromtimestamp(START_TIME, timezone.utc).isoformat(),
    }


def check_backend_config(app) -> Dict[str, Any]:
    """
    Whether BACKEND_API_URL looks usable

    Args:
        app: Flask application instance

    Returns:
        url, configured flag and timeout
    """
    url = app.config.get('BACKEND_API_URL') or ''
    return {
        'url': url,
        'configured': url.startswith(('http://', 'https://')),
        'timeout': app.config.get('BACKEND_TIMEOUT'),
    }


def get_engine_summary(app) -> Dict[str, Any]:
    """Current work session state of this device (no entry details)."""
    engine = app.extensions.get('field_visit')
    if engine is None:
        return {'initialized': False}
    return {
        'initialized': True,
        'mode': engine.mode.name,
        'state': engine.controller.state.value,
        'entries': len(engine.visit_logger),
    }


@health_bp.route('/health', methods=['GET'])
def health_check():
    """Liveness: the process answers."""
    return jsonify({
        'status': 'healthy',
        'service': SERVICE_NAME,
        'timestamp': _utcnow_iso(),
    }), 200


@health_bp.route('/ready', methods=['GET'])
def readiness_check():
    """Readiness: engine built and a backend URL configured (503 otherwise)."""
    checks = {
        'backend': check_backend_config(current_app),
        'engine': get_engine_summary(current_app),
    }
    ready = checks['backend']['configured'] and checks['engine']['initialized']
    if not ready:
        logger.warning(f"Not ready: {checks}")

    return jsonify({
        'status': 'ready' if ready else 'not_ready',
        'timestamp': _utcnow_iso(),
        'checks': checks,
    }), 200 if ready else 503


@health_bp.route('/metrics', methods=['GET'])
def metrics():
    """Process metrics, uptime and session state."""
    return jsonify({
        'service': SERVICE_NAME,
        'version': SERVICE_VERSION,
        'environment': os.environ.get('FLASK_ENV', 'production'),
        'timestamp': _utcnow_iso(),
        'uptime': get_uptime(),
        'system': get_system_metrics(),
        'engine': get_engine_summary(current_app),
    }), 200


def register_health_checks(app):
    app.register_blueprint(health_bp)
    logger.info("Health check endpoints registered: /health, /ready, /metrics")
