"""
URL configuration for the live tracker relay.

The relay has no HTTP views; plain HTTP requests get a 404 and only the
WebSocket upgrade is served (see ``relay.routing``).
"""

from django.urls.resolvers import URLPattern, URLResolver

urlpatterns: list[URLPattern | URLResolver] = []
