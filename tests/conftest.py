"""
Pytest configuration and shared fixtures for Basic Shuffle tests.

Provides:
- Repo root on sys.path (flat module layout)
- Non-interactive matplotlib backend
- A recording transport and a node factory
"""

import os
import random
import sys

import matplotlib

matplotlib.use("Agg")

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from shuffle import BasicShuffle  # noqa: E402


class RecordingTransport:
    """Collects (sender, dest, message) instead of delivering."""

    def __init__(self):
        self.sent = []

    def send(self, sender, dest, message):
        self.sent.append((sender, dest, message))

    def last(self):
        return self.sent[-1]


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def make_node(transport):
    """Factory for a BasicShuffle node wired to the recording transport."""
    def _make(node_id="P", cache_size=5, shuffle_length=3, neighbors=(), seed=7):
        node = BasicShuffle(node_id, cache_size, shuffle_length, transport,
                            rng=random.Random(seed))
        for peer in neighbors:
            assert node.add_neighbor(peer)
        return node
    return _make
