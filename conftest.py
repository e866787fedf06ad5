"""Shared test fixtures for the live tracker relay."""

import pytest
from channels import DEFAULT_CHANNEL_LAYER
from channels.layers import InMemoryChannelLayer, channel_layers

from relay.registry import TrackerRegistry, reset_tracker_registry


@pytest.fixture
def channel_layer() -> InMemoryChannelLayer:
    """Install a fresh in-memory channel layer as the default layer."""
    layer = InMemoryChannelLayer(capacity=100)
    channel_layers.set(DEFAULT_CHANNEL_LAYER, layer)
    return layer


@pytest.fixture(autouse=True)
def registry(channel_layer: InMemoryChannelLayer) -> TrackerRegistry:
    """Give every test an empty tracker registry bound to its channel layer."""
    return reset_tracker_registry(channel_layer)
