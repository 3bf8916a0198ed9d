"""
WSGI config for the chat service.

WSGI serves the REST API only; WebSockets need the ASGI application
(config.asgi). Provided for traditional deployment options.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
