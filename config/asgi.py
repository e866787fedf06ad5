"""
ASGI config for the live tracker relay.

It exposes the ASGI callable as a module-level variable named ``application``.

For more information on this file, see
https://docs.djangoproject.com/en/5.0/howto/deployment/asgi/
"""

import os
from typing import cast

from channels.routing import ProtocolTypeRouter, URLRouter
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

# Initialize Django ASGI application early to ensure the AppRegistry
# is populated before importing the relay consumers.
django_asgi_app = get_asgi_application()

from relay.routing import websocket_urlpatterns  # noqa: E402

# Plain HTTP reaches an empty URLconf and is answered with 404
application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": URLRouter(
        cast(list, websocket_urlpatterns)  # type: ignore[arg-type]
    ),
})
