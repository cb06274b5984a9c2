"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi create-user --id qa-1 --role QA
    gunicorn wsgi:app
"""

from labflow import create_app

app = create_app()
