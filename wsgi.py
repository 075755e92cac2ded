"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi seed-sample-template
    flask --app wsgi db upgrade
"""

from vsaq import create_app

app = create_app()
