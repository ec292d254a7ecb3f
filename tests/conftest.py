"""Shared fixtures."""

import pytest

from paywiser.client import ClearNodeClient
from tests.fixtures.clearnode import FakeClearNode, make_identity, make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def identity():
    return make_identity()


@pytest.fixture
def fake_node():
    return FakeClearNode()


@pytest.fixture
def client(settings, identity, fake_node):
    """Client wired to the fake ClearNode; not yet connected."""
    return ClearNodeClient(settings, identity=identity, transport_factory=lambda: fake_node)
