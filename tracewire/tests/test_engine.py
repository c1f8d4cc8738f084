"""Tests for server/client span propagation through the engine."""

import logging
import re
import threading
from types import MappingProxyType

import pytest
from opentelemetry.trace import SpanKind

from tracewire.config import TracingConfig
from tracewire.context import ActiveSpanContext, decode
from tracewire.exporter import InMemoryExporter
from tracewire.instrumentation import InboundRequest, PropagationEngine
from tracewire.processors import SimpleSpanProcessor, build_sampler
from tracewire.tracer import NOOP_SPAN, TracerProvider


class TestServerSpan:
    """begin_server_span / finish_server_span."""

    def test_no_header_starts_new_trace(self, engine):
        headers = {"Accept": "*/*"}
        span, context = engine.begin_server_span(headers, "/ping", "GET", "10.0.0.1")

        assert span.identity.trace_id != 0
        assert span.parent_span_id is None
        assert span.kind == SpanKind.SERVER
        assert context.span is span
        assert headers == {"Accept": "*/*"}

    def test_fresh_trace_ids_differ(self, engine):
        first, _ = engine.begin_server_span({}, "/a", "GET")
        second, _ = engine.begin_server_span({}, "/a", "GET")
        assert first.identity.trace_id != second.identity.trace_id

    def test_joins_incoming_trace(self, engine):
        span, _ = engine.begin_server_span({"uber-trace-id": "abc123:1:0:1"}, "/ping", "GET", "10.0.0.1")

        assert span.identity.trace_id == 0xABC123
        assert span.parent_span_id == 1
        assert span.identity.span_id != 1

    def test_sampled_flag_from_header(self, engine):
        span, _ = engine.begin_server_span({"uber-trace-id": "deadbeef:1:0:1"}, "/", "GET")
        assert span.identity.trace_id == 0xDEADBEEF
        assert span.identity.sampled is True

    def test_malformed_header_starts_new_trace(self, engine, caplog):
        with caplog.at_level(logging.WARNING):
            span, _ = engine.begin_server_span({"uber-trace-id": "nonsense"}, "/ping", "GET")

        assert span.identity.trace_id != 0
        assert span.parent_span_id is None
        assert any("malformed" in r.getMessage() for r in caplog.records)

    def test_standard_tags(self, engine):
        span, _ = engine.begin_server_span({}, "/ping", "POST", "192.168.1.4")

        assert span.tags["http.url"] == "/ping"
        assert span.tags["http.method"] == "POST"
        assert span.tags["peer.ipv4"] == "192.168.1.4"
        assert span.tags["component"] == "tracewire-http-server"
        assert span.tags["span.kind"] == "server"
        assert span.operation_name == "/ping"

    def test_baggage_is_inherited(self, engine):
        span, _ = engine.begin_server_span(
            {"uber-trace-id": "abc:1:0:1", "uberctx-user": "alice"}, "/", "GET"
        )
        assert span.identity.baggage == {"user": "alice"}

    def test_finish_tags_status_and_reports(self, engine, exporter):
        span, _ = engine.begin_server_span({}, "/ping", "GET", now=1_000)
        engine.finish_server_span(span, 200, now=5_000)

        assert span.finished
        assert span.start_time_ns == 1_000
        assert span.end_time_ns == 5_000
        assert span.duration_ns == 4_000
        assert span.tags["http.status_code"] == 200
        assert span.tags["request.errors"] == ""
        assert "error" not in span.tags
        assert exporter.get_finished_spans() == [span]

    def test_finish_with_error_summary(self, engine):
        span, _ = engine.begin_server_span({}, "/ping", "GET")
        engine.finish_server_span(span, 400, "ValueError: bad input")

        assert span.tags["request.errors"] == "ValueError: bad input"
        assert span.tags["error"] is True

    def test_finish_with_server_error_status(self, engine):
        span, _ = engine.begin_server_span({}, "/ping", "GET")
        engine.finish_server_span(span, 503)
        assert span.tags["error"] is True

    def test_finish_cancelled(self, engine):
        span, _ = engine.begin_server_span({}, "/slow", "GET")
        engine.finish_server_span(span, 504, "timeout", cancelled=True)

        assert span.tags["request.cancelled"] is True
        assert span.tags["error"] is True

    def test_tags_after_finish_are_ignored(self, engine):
        span, _ = engine.begin_server_span({}, "/ping", "GET")
        engine.finish_server_span(span, 200)
        span.set_tag("late", "value")
        assert "late" not in span.tags

    def test_double_finish_reports_once(self, engine, exporter, caplog):
        span, _ = engine.begin_server_span({}, "/ping", "GET")
        engine.finish_server_span(span, 200, now=10)
        with caplog.at_level(logging.WARNING, logger="tracewire.tracer.span"):
            engine.finish_server_span(span, 500, now=20)

        assert span.end_time_ns == 10
        assert span.tags["http.status_code"] == 200
        assert len(exporter.get_finished_spans()) == 1
        assert any("more than once" in r.getMessage() for r in caplog.records)

    def test_set_tag_waits_for_span_lock(self, engine):
        span, _ = engine.begin_server_span({}, "/ping", "GET")
        writer = threading.Thread(target=span.set_tag, args=("late", "value"))

        with span._lock:
            writer.start()
            writer.join(timeout=0.05)
            assert writer.is_alive()
            assert "late" not in span.tags
        writer.join(timeout=5)

        assert span.tags["late"] == "value"

    def test_set_tag_racing_finish_never_touches_reported_span(self, engine, exporter):
        span, _ = engine.begin_server_span({}, "/ping", "GET")

        with span._lock:
            writer = threading.Thread(target=span.set_tag, args=("late", "value"))
            writer.start()
            writer.join(timeout=0.05)
            span.finished = True
        writer.join(timeout=5)

        assert "late" not in span.tags

    def test_long_tag_values_are_truncated(self, provider):
        tracer = provider.get_tracer("tests")
        tracer.max_tag_value_length = 8
        span, _ = PropagationEngine(tracer).begin_server_span({}, "/a-very-long-path", "GET")
        assert span.tags["http.url"] == "/a-very-"
        tracer.max_tag_value_length = 65535


class TestClientSpan:
    """begin_client_span / finish_client_span."""

    def test_without_context_is_noop(self, engine, exporter):
        headers = {"Accept": "*/*"}
        span = engine.begin_client_span(None, headers, "http://localhost:8080/hello", "GET")

        assert span is NOOP_SPAN
        assert headers == {"Accept": "*/*"}
        engine.finish_client_span(span)
        assert exporter.get_finished_spans() == []

    def test_sentinel_context_is_noop(self, engine):
        headers = {}
        span = engine.begin_client_span(ActiveSpanContext(NOOP_SPAN), headers, "http://svc/x", "GET")
        assert span is NOOP_SPAN
        assert headers == {}

    def test_child_of_server_span(self, engine):
        server, context = engine.begin_server_span({}, "/ping", "GET")
        headers = {}
        client = engine.begin_client_span(context, headers, "http://localhost:8080/hello", "GET")

        assert client.kind == SpanKind.CLIENT
        assert client.identity.trace_id == server.identity.trace_id
        assert client.parent_span_id == server.identity.span_id
        assert client.identity.span_id != server.identity.span_id
        assert client.operation_name == "/hello"

        propagated = decode(headers)
        assert propagated.trace_id == server.identity.trace_id
        assert propagated.span_id == client.identity.span_id

    def test_client_tags(self, engine):
        _, context = engine.begin_server_span({}, "/ping", "GET")
        client = engine.begin_client_span(context, {}, "http://api.internal:8080/hello?x=1", "GET")

        assert client.tags["http.method"] == "GET"
        assert client.tags["http.url"] == "http://api.internal:8080/hello?x=1"
        assert client.tags["peer.hostname"] == "api.internal"
        assert client.tags["peer.port"] == 8080
        assert client.tags["component"] == "tracewire-http-client"
        assert client.tags["span.kind"] == "client"

    def test_unparsable_port_only_tags_hostname(self, engine):
        _, context = engine.begin_server_span({}, "/ping", "GET")
        headers = {}
        client = engine.begin_client_span(context, headers, "http://localhost:notaport/hello", "GET")

        assert client.is_recording()
        assert client.tags["peer.hostname"] == "localhost"
        assert "peer.port" not in client.tags
        assert "uber-trace-id" in headers

    def test_url_without_port(self, engine):
        _, context = engine.begin_server_span({}, "/", "GET")
        client = engine.begin_client_span(context, {}, "https://example.com/path", "GET")
        assert client.tags["peer.hostname"] == "example.com"
        assert "peer.port" not in client.tags

    def test_baggage_propagates_downstream(self, engine):
        _, context = engine.begin_server_span(
            {"uber-trace-id": "abc:1:0:1", "uberctx-tenant": "acme"}, "/", "GET"
        )
        headers = {}
        engine.begin_client_span(context, headers, "http://svc/x", "GET")
        assert headers["uberctx-tenant"] == "acme"

    def test_finish_records_failed_call(self, engine, exporter):
        _, context = engine.begin_server_span({}, "/", "GET")
        client = engine.begin_client_span(context, {}, "http://svc/x", "GET")
        engine.finish_client_span(client, error="ConnectionError: refused")

        assert client.finished
        assert client.tags["error"] is True
        assert client.tags["error.message"] == "ConnectionError: refused"
        assert client in exporter.get_finished_spans()

    def test_finish_records_status(self, engine):
        _, context = engine.begin_server_span({}, "/", "GET")
        client = engine.begin_client_span(context, {}, "http://svc/x", "GET")
        engine.finish_client_span(client, status_code=502)

        assert client.tags["http.status_code"] == 502
        assert client.tags["error"] is True

    def test_finished_parent_is_not_active(self, engine):
        server, context = engine.begin_server_span({}, "/", "GET")
        engine.finish_server_span(server, 200)
        headers = {}
        assert engine.begin_client_span(context, headers, "http://svc/x", "GET") is NOOP_SPAN
        assert headers == {}


class TestRequestLifecycle:
    """Whole-request scenarios through on_request_start / on_request_end."""

    def test_ping_calls_hello(self, engine, exporter):
        scope = engine.on_request_start(InboundRequest(method="GET", path="/ping", remote_addr="127.0.0.1:52000"))
        server = scope.span
        assert server.identity.trace_id != 0
        assert server.parent_span_id is None

        outbound = {}
        client = engine.begin_client_span(scope.context, outbound, "http://localhost:8080/hello", "GET")
        engine.finish_client_span(client, status_code=200)

        propagated = decode(outbound)
        assert propagated.trace_id == server.identity.trace_id
        assert propagated.span_id != server.identity.span_id

        engine.on_request_end(scope, 200)
        assert server.tags["http.status_code"] == 200
        assert server.tags["peer.ipv4"] == "127.0.0.1"
        assert exporter.get_finished_spans() == [client, server]

    def test_every_span_finished_exactly_once(self, engine, exporter):
        scope = engine.on_request_start(InboundRequest(method="GET", path="/fanout"))
        clients = []
        for i in range(5):
            span = engine.begin_client_span(scope.context, {}, f"http://svc-{i}:9000/work", "POST")
            clients.append(span)
            engine.finish_client_span(span, status_code=200)
        engine.on_request_end(scope, 200)
        engine.on_request_end(scope, 500)

        finished = exporter.get_finished_spans()
        assert len(finished) == 6
        assert len({s.identity.span_id for s in finished}) == 6
        assert {s.identity.trace_id for s in finished} == {scope.span.identity.trace_id}
        assert all(s.parent_span_id == scope.span.identity.span_id for s in clients)
        assert scope.span.tags["http.status_code"] == 200

    def test_request_tags(self, engine):
        scope = engine.on_request_start(
            InboundRequest(
                method="GET",
                path="/ping",
                headers={"User-Agent": "curl/8.0", "X-Forwarded-For": "1.2.3.4"},
                remote_addr="10.1.2.3:40000",
            )
        )
        tags = scope.span.tags
        assert tags["http.headers.user-agent"] == "curl/8.0"
        assert tags["http.headers.x-forwarded-for"] == "1.2.3.4"
        assert tags["peer.ipv4"] == "10.1.2.3"
        assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\+00:00$", tags["request.time"])

    def test_request_body_not_captured_by_default(self, engine):
        scope = engine.on_request_start(InboundRequest(method="POST", path="/", body=b'{"password": "x"}'))
        assert "http.request.body" not in scope.span.tags

    def test_request_body_capture_is_opt_in(self, tracer):
        config = TracingConfig(capture_request_body=True, max_body_tag_length=5)
        engine = PropagationEngine(tracer, config=config)
        scope = engine.on_request_start(InboundRequest(method="POST", path="/", body=b"hello world"))
        assert scope.span.tags["http.request.body"] == "hello"

    def test_server_span_context_manager(self, engine, exporter):
        with engine.server_span(InboundRequest(method="GET", path="/ok")) as scope:
            scope.status_code = 201
        assert scope.span.tags["http.status_code"] == 201
        assert exporter.get_finished_spans() == [scope.span]

    def test_server_span_context_manager_on_error(self, engine):
        with pytest.raises(ValueError, match="boom"):
            with engine.server_span(InboundRequest(method="GET", path="/fail")) as scope:
                raise ValueError("boom")

        assert scope.finished
        assert scope.span.tags["http.status_code"] == 500
        assert scope.span.tags["request.errors"] == "ValueError: boom"

    def test_server_span_context_manager_on_cancel(self, engine):
        with pytest.raises(KeyboardInterrupt):
            with engine.server_span(InboundRequest(method="GET", path="/slow")) as scope:
                raise KeyboardInterrupt()
        assert scope.span.tags["request.cancelled"] is True

    def test_client_span_context_manager(self, engine):
        scope = engine.on_request_start(InboundRequest(method="GET", path="/"))
        headers = {}
        with pytest.raises(ConnectionError):
            with engine.client_span(scope.context, headers, "http://down:1/x", "GET") as span:
                raise ConnectionError("refused")
        assert span.finished
        assert span.tags["error.message"] == "ConnectionError: refused"
        assert "uber-trace-id" in headers


class TestSampling:
    def test_declined_trace_still_propagates(self):
        exporter = InMemoryExporter()
        provider = TracerProvider(service_name="unsampled", sampler=build_sampler("const", 0))
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        engine = PropagationEngine(provider.get_tracer("tests"))

        server, context = engine.begin_server_span({}, "/", "GET")
        headers = {}
        client = engine.begin_client_span(context, headers, "http://svc/x", "GET")
        engine.finish_client_span(client)
        engine.finish_server_span(server, 200)

        assert server.identity.sampled is False
        assert client.is_recording()
        assert client.identity.trace_id == server.identity.trace_id
        assert headers["uber-trace-id"].endswith(":00")
        assert exporter.get_finished_spans() == []
        provider.shutdown()

    def test_remote_decision_is_inherited(self, engine, exporter):
        server, context = engine.begin_server_span({"uber-trace-id": "abc:1:0:0"}, "/", "GET")
        client = engine.begin_client_span(context, {}, "http://svc/x", "GET")
        engine.finish_client_span(client)
        engine.finish_server_span(server, 200)

        assert server.identity.sampled is False
        assert client.identity.sampled is False
        assert exporter.get_finished_spans() == []


class _BrokenTracer:
    def start_span(self, *args, **kwargs):
        raise RuntimeError("tracer exploded")


class TestFailureIsolation:
    def test_broken_tracer_never_fails_the_request(self, caplog):
        engine = PropagationEngine(_BrokenTracer())
        with caplog.at_level(logging.WARNING, logger="tracewire.instrumentation.engine"):
            scope = engine.on_request_start(InboundRequest(method="GET", path="/"))
            headers = {}
            client = engine.begin_client_span(scope.context, headers, "http://svc/x", "GET")
            engine.finish_client_span(client)
            engine.on_request_end(scope, 200)

        assert scope.span is NOOP_SPAN
        assert client is NOOP_SPAN
        assert headers == {}
        assert any("Failed to start server span" in r.getMessage() for r in caplog.records)

    def test_client_span_is_finished_when_injection_fails(self, engine, exporter):
        server, context = engine.begin_server_span({}, "/ping", "GET")

        client = engine.begin_client_span(context, MappingProxyType({}), "http://svc:9000/hello", "GET")

        assert client is NOOP_SPAN
        finished = [s for s in exporter.get_finished_spans() if s.kind == SpanKind.CLIENT]
        assert len(finished) == 1
        assert finished[0].finished
        assert finished[0].tags["error"] is True
        assert finished[0].parent_span_id == server.identity.span_id
