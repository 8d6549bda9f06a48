"""In-memory API backend for integration testing.

Provides a fake implementation of the backend client protocol so the
reconcile engine can be exercised without network access.

Key Features:
- In-memory API state keyed by generated identifier
- Backend-defaulted selection expressions (late initialization)
- Reserved-prefix system tags injected on create
- Error injection per verb, and artificial latency for timeout tests
- Call recording for assertions

Usage:
    from backend_mock import MockApiBackend, http_error

    backend = MockApiBackend()
    backend.fail_next("create_api", http_error(503, "unavailable"))
    manager = ResourceManager(config, backend)
"""

from .api import (
    DEFAULT_API_KEY_SELECTION_EXPRESSION,
    DEFAULT_ROUTE_SELECTION_EXPRESSION,
    MockApiBackend,
    http_error,
)

__all__ = [
    "DEFAULT_API_KEY_SELECTION_EXPRESSION",
    "DEFAULT_ROUTE_SELECTION_EXPRESSION",
    "MockApiBackend",
    "http_error",
]
