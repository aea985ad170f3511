"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi escalate-requests
"""

from wifidesk import create_app

app = create_app()
