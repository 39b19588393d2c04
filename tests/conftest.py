"""
Shared fixtures for the HTTP surface tests.

The app boots with its defaults: the in-memory harness platform, no stats
tracking and no bot-list publisher, so nothing leaves the process.
"""

import pytest


@pytest.fixture(scope="session")
def test_client():
    """A TestClient with startup/shutdown run around the whole session."""
    from fastapi.testclient import TestClient
    from shardline.app import app

    with TestClient(app) as client:
        yield client
