"""
ASGI config for the settlement service.

The service only speaks HTTP, so the plain Django ASGI application is
exposed for Uvicorn.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/asgi/
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_asgi_application()
