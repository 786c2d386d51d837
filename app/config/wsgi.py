"""
WSGI config for the chat delivery service.

Serves the HTTP API only; the WebSocket channel requires the ASGI entry
point in config/asgi.py.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
