"""WSGI entry point for production deployment (gunicorn wsgi:app)."""

from server import configure_logging, create_app, load_settings

settings = load_settings()
configure_logging(settings["LOG_LEVEL"])

app = create_app(settings)
