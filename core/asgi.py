# core/asgi.py

import os

from channels.routing import ProtocolTypeRouter
from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "core.settings")

# notifications are pushed server-side only, no websocket consumers are routed here yet
application = ProtocolTypeRouter({
    "http": get_asgi_application(),
})
