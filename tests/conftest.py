"""Shared pytest configuration."""

import logging

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers and keep engine logs visible on failure."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")
    config.addinivalue_line("markers", "chroma: marks tests that run against an in-process Chroma")
    logging.getLogger("grounded_rag").setLevel(logging.DEBUG)
