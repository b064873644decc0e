"""
Shared pytest fixtures and configuration for function-spine tests.

This module provides:
- Default registry cleanup for test isolation
- Explicit registries with sample functions
- Sample legacy and CloudEvent payloads
- Auto-markers by test location
"""

import sys
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

# Ensure functionspine package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from functionspine import FunctionRegistry, reset_default_registry
from functionspine.logging import configure_logging
from functionspine.settings import ServerConfig

configure_logging(level="WARNING", json_format=False, add_timestamp=False)


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Registry Cleanup Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_default_registry() -> Generator[None, None, None]:
    """
    Reset the default registry before and after each test.

    Decorator registrations in one test never leak into another.
    """
    reset_default_registry()
    yield
    reset_default_registry()


@pytest.fixture
def info_logging() -> Generator[None, None, None]:
    """JSON logging at INFO, as the CLI configures it when serving."""
    configure_logging(level="INFO", json_format=True)
    yield
    configure_logging(level="WARNING", json_format=False, add_timestamp=False)


# =============================================================================
# Registries and Config
# =============================================================================


@pytest.fixture
def registry() -> FunctionRegistry:
    """An empty explicit registry."""
    return FunctionRegistry()


@pytest.fixture
def sample_registry() -> FunctionRegistry:
    """
    Registry with one function of each kind plus a startup task.

    - ``hello``  (http)       → "Hello, <name>!" using the ``greeting`` global
    - ``add``    (typed)      → {"sum": a + b}
    - ``record`` (cloudevent) → appends each event to the ``events`` global
    """
    registry = FunctionRegistry()

    def setup(function, globals, logger):
        globals["greeting"] = "Hello"
        globals["events"] = []

    def hello(request):
        from functionspine import get_global

        name = request.query_params.get("name", "world")
        return f"{get_global('greeting')}, {name}!"

    def add(payload):
        return {"sum": payload["a"] + payload["b"]}

    def record(event):
        from functionspine import get_global

        get_global("events").append(event)

    registry.add_startup_task(setup)
    registry.register_http("hello", hello)
    registry.register_typed("add", add)
    registry.register_event("record", record)
    return registry


@pytest.fixture
def config() -> ServerConfig:
    """Config bound to a free local port."""
    return ServerConfig(bind_addr="127.0.0.1", port=0, graceful_shutdown_timeout=2.0, max_threads=4)


# =============================================================================
# Sample Payloads
# =============================================================================


@pytest.fixture
def storage_legacy_event() -> dict[str, Any]:
    """Nested-context storage finalize event."""
    return {
        "context": {
            "eventId": "1147091835525187",
            "timestamp": "2020-04-23T07:38:57.772Z",
            "eventType": "google.storage.object.finalize",
            "resource": {
                "service": "storage.googleapis.com",
                "name": "projects/_/buckets/some-bucket/objects/folder/Test.cs",
                "type": "storage#object",
            },
        },
        "data": {
            "bucket": "some-bucket",
            "name": "folder/Test.cs",
            "contentType": "text/plain",
        },
    }


@pytest.fixture
def structured_cloud_event() -> dict[str, Any]:
    """Structured-mode CloudEvent body."""
    return {
        "specversion": "1.0",
        "id": "evt-1",
        "source": "//example.com/orders",
        "type": "com.example.order.created",
        "datacontenttype": "application/json",
        "subject": "orders/42",
        "data": {"order": 42},
    }
