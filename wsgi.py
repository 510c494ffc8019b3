"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi run-due-jobs
"""

from rentflow import create_app

app = create_app()
