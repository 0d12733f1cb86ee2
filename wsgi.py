"""
WSGI entry point (gunicorn wsgi:app) and Flask-Migrate / CLI target.

Usage:
    flask --app wsgi seed-demo
    flask --app wsgi db upgrade
"""

from ppmp import create_app

app = create_app()
