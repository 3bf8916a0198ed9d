# =============================================================================
# Chat Service Configuration Package
# =============================================================================
# Settings, URLs, ASGI/WSGI applications and Celery configuration.
#
# The Celery app is imported here so shared tasks bind to it on Django startup.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
