"""
Centralized Configuration for the Field Visit Service
Manages environment-specific settings, backend connection and engine options.
"""
import os


def _env_bool(name, default='false'):
    return os.environ.get(name, default).lower() == 'true'


def _uploads_url_from(api_url):
    base = api_url.rstrip('/')
    if base.endswith('/api'):
        base = base[:-len('/api')]
    return f"{base}/uploads"


class Config:
    """Base configuration with defaults"""

    # Flask Settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or os.urandom(32).hex()
    JSON_SORT_KEYS = False

    # CORS Settings
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
    CORS_METHODS = ['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS']
    CORS_ALLOW_HEADERS = ['Content-Type', 'Authorization', 'X-Requested-With']

    # Shared key the technician client sends as X-API-Key (unset = open)
    DEVICE_API_KEY = os.environ.get('DEVICE_API_KEY')

    # Backend API (customers, visit logs, appointments)
    BACKEND_API_URL = os.environ.get('BACKEND_API_URL', 'http://localhost:3000/api')
    BACKEND_TIMEOUT = int(os.environ.get('BACKEND_TIMEOUT', '30'))  # seconds
    UPLOADS_URL = os.environ.get('UPLOADS_URL') or _uploads_url_from(BACKEND_API_URL)

    # Field visit engine
    SYNC_STATION_LOGS = _env_bool('SYNC_STATION_LOGS')
    COORDINATE_SCHEME = os.environ.get('COORDINATE_SCHEME', 'legacy')
    EVENT_HISTORY_SIZE = int(os.environ.get('EVENT_HISTORY_SIZE', '200'))

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    LOG_DIR = os.environ.get('LOG_DIR', 'logs')
    LOG_FILE = os.environ.get('LOG_FILE', 'field_visit.log')


class DevelopmentConfig(Config):
    """Development-specific configuration"""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = 'DEBUG'
    # Allow all CORS in development
    CORS_ORIGINS = ['*']


class ProductionConfig(Config):
    """Production-specific configuration"""
    DEBUG = False
    TESTING = False
    # Strict CORS in production
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'http://localhost').split(',')
    PREFERRED_URL_SCHEME = 'https'


class TestingConfig(Config):
    """Testing-specific configuration"""
    DEBUG = True
    TESTING = True
    BACKEND_API_URL = 'http://backend.test/api'
    UPLOADS_URL = 'http://backend.test/uploads'
    SYNC_STATION_LOGS = False
    COORDINATE_SCHEME = 'legacy'
    DEVICE_API_KEY = None
    LOG_FILE = None  # console only


# Configuration selector
config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig,
}


def get_config():
    """Get configuration based on FLASK_ENV environment variable"""
    env = os.environ.get('FLASK_ENV', 'development')
    return config_by_name.get(env, DevelopmentConfig)
