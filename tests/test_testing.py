"""
Tests for functionspine.testing — calling functions without a server.
"""

from __future__ import annotations

import pytest

from functionspine import GlobalsFrozenError, get_global, testing
from functionspine.registry import http, on_startup


class TestMakeRequest:
    def test_defaults(self):
        request = testing.make_request()
        assert request.method == "GET"
        assert request.path == "/"
        assert request.body == b""

    def test_query_body_and_headers(self):
        request = testing.make_request(
            "/items",
            method="post",
            body='{"a": 1}',
            headers={"Content-Type": "application/json"},
            query={"page": "2"},
        )
        assert request.method == "POST"
        assert request.url == "http://localhost:8080/items?page=2"
        assert request.query_params["page"] == "2"
        assert request.headers["content-type"] == "application/json"
        assert request.json() == {"a": 1}


class TestMakeCloudEvent:
    def test_defaults(self):
        event = testing.make_cloud_event({"n": 1})
        assert event.id
        assert event.source == "functionspine://testing"
        assert event.type == "com.example.test"
        assert event.data == {"n": 1}

    def test_extensions(self):
        event = testing.make_cloud_event(id="e-1", traceparent="00-abc")
        assert event.id == "e-1"
        assert event.extensions["traceparent"] == "00-abc"


class TestCallHttp:
    def test_runs_startup_tasks(self, sample_registry):
        request = testing.make_request(query={"name": "test"})
        response = testing.call_http("hello", request, registry=sample_registry)
        assert response.status_code == 200
        assert response.body == b"Hello, test!"

    def test_explicit_globals(self, sample_registry):
        globals = testing.run_startup_tasks("hello", registry=sample_registry)
        response = testing.call_http("hello", globals=globals, registry=sample_registry)
        assert response.body == b"Hello, world!"
        with pytest.raises(GlobalsFrozenError):
            globals["greeting"] = "Bye"

    def test_default_registry_with_decorators(self):
        @on_startup
        def setup(function, globals, logger):
            globals["who"] = "decorated"

        @http("who")
        def who(request):
            return get_global("who")

        assert testing.call_http("who").body == b"decorated"

    def test_original_exception_propagates(self, registry):
        def boom(request):
            raise KeyError("missing")

        registry.register_http("boom", boom)
        with pytest.raises(KeyError):
            testing.call_http("boom", registry=registry)

    def test_kind_mismatch(self, sample_registry):
        with pytest.raises(TypeError):
            testing.call_http("add", registry=sample_registry)


class TestCallTyped:
    def test_plain_value(self, sample_registry):
        assert testing.call_typed("add", {"a": 1, "b": 2}, registry=sample_registry) == {"sum": 3}

    def test_decoder_applied(self, registry):
        registry.register_typed("double", lambda n: n * 2, request_decoder=int)
        assert testing.call_typed("double", "21", registry=registry) == 42


class TestCallEvent:
    def test_event_delivered(self, sample_registry):
        globals = testing.run_startup_tasks("record", registry=sample_registry)
        event = testing.make_cloud_event({"n": 1})
        testing.call_event("record", event, globals=globals, registry=sample_registry)
        assert globals["events"] == [event]


class TestMakeClient:
    def test_serves_target(self, sample_registry):
        client = testing.make_client("add", registry=sample_registry)
        response = client.post("/", json={"a": 20, "b": 22})
        assert response.json() == {"sum": 42}
