"""
WebSocket URL routing for the relay app.

Browser clients connect to the server root; ``ws/`` serves deployments
that route WebSocket traffic by path.
"""
from django.urls import path

from . import consumers

websocket_urlpatterns = [
    path('', consumers.TrackerRelayConsumer.as_asgi()),
    path('ws/', consumers.TrackerRelayConsumer.as_asgi()),
]
