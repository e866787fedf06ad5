"""App configuration for the relay application."""
from django.apps import AppConfig


class RelayConfig(AppConfig):
    """Configuration for the relay app."""

    name: str = 'relay'
    verbose_name: str = 'Live Tracker Relay'
