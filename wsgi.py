"""
WSGI Entry Point for Gunicorn

    gunicorn wsgi:app
"""

from app_init import create_app

app = create_app()
