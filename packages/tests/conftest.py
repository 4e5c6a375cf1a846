"""Pytest configuration and shared fixtures."""

import pytest

# The tpheat testing plugin is registered via a ``pytest11`` entry point
# (pyproject.toml).  In our own suite it is disabled (``-p no:tpheat``)
# and loaded here instead, so that the tpheat import chain is measured
# by ``pytest-cov``.
pytest_plugins = ["tpheat.testing._plugin"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (full app with test doubles)"
    )
