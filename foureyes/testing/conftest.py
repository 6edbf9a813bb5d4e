"""
Pytest plugin for four-eyes testing fixtures.

To use these fixtures in your tests, add this to your conftest.py:

    pytest_plugins = ["foureyes.testing.conftest"]
"""

from foureyes.testing.fixtures import (
    deployment_store,
    job_hooks,
    live_normalizer,
    mock_github,
    snapshot_cache,
)

__all__ = [
    "mock_github",
    "snapshot_cache",
    "deployment_store",
    "job_hooks",
    "live_normalizer",
]
