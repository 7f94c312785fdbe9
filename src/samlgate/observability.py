"""Observability integration for the gate.

Every request produces structured JSON log lines on the
``samlgate.observability`` logger. When OpenTelemetry is installed and enabled,
each request additionally runs inside a server span.
"""

from __future__ import annotations

import logging
import time
from contextlib import ExitStack
from typing import TYPE_CHECKING, Any, Mapping

import msgspec

from .serialization import json_encode

if TYPE_CHECKING:
    from .requests import Request
    from .responses import Response


class ObservabilityConfig(msgspec.Struct, frozen=True, rename="camel"):
    """Top-level observability configuration."""

    enabled: bool = True
    logger_name: str = "samlgate.observability"
    opentelemetry_enabled: bool = True
    opentelemetry_tracer: str = "samlgate"
    span_name: str = "samlgate.request"


class _ObservationContext:
    __slots__ = ("fields", "span", "stack", "start")

    def __init__(self, *, start: float, stack: ExitStack, span: Any | None, fields: Mapping[str, Any]) -> None:
        self.start = start
        self.stack = stack
        self.span = span
        self.fields = dict(fields)

    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.start) * 1000, 3)

    def close(self, error: BaseException | None = None) -> None:
        if error is None:
            self.stack.__exit__(None, None, None)
        else:
            self.stack.__exit__(type(error), error, error.__traceback__)


class Observability:
    """Coordinate request logging and tracing providers."""

    def __init__(self, config: ObservabilityConfig | None = None) -> None:
        self.config = config or ObservabilityConfig()
        self._logger = logging.getLogger(self.config.logger_name)
        self._tracer = None
        self._server_span_kind = None
        self._status_cls = None
        self._status_error = None
        if self.config.enabled:
            self._prepare_opentelemetry()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _prepare_opentelemetry(self) -> None:
        if not self.config.opentelemetry_enabled:
            return
        try:
            from opentelemetry import trace  # type: ignore[import-not-found]
        except ImportError:  # pragma: no cover - optional dependency
            return
        self._tracer = trace.get_tracer(self.config.opentelemetry_tracer)
        self._server_span_kind = getattr(trace.SpanKind, "SERVER", None)
        self._status_cls = getattr(trace, "Status", None)
        status_code = getattr(trace, "StatusCode", None)
        self._status_error = getattr(status_code, "ERROR", None) if status_code else None

    def log(self, event: str, fields: Mapping[str, Any] | None = None, *, level: int = logging.INFO) -> None:
        if not self.config.enabled:
            return
        payload: dict[str, Any] = {"event": event}
        if fields:
            for key, value in fields.items():
                if value is not None:
                    payload[key] = value
        self._logger.log(level, json_encode(payload).decode())

    def on_request_start(self, request: "Request", *, lane: str) -> _ObservationContext | None:
        if not self.config.enabled:
            return None
        fields = {"lane": lane, "method": request.method, "path": request.path}
        stack = ExitStack()
        span = None
        if self._tracer is not None:
            span = stack.enter_context(
                self._tracer.start_as_current_span(self.config.span_name, kind=self._server_span_kind)
            )
            span.set_attribute("http.method", request.method)
            span.set_attribute("url.path", request.path)
            span.set_attribute("samlgate.lane", lane)
        context = _ObservationContext(start=time.perf_counter(), stack=stack, span=span, fields=fields)
        self.log("request.start", fields)
        return context

    def on_request_success(self, context: _ObservationContext | None, response: "Response | None") -> None:
        if context is None:
            return
        fields = dict(context.fields)
        if response is None:
            fields["outcome"] = "forward"
        else:
            fields["outcome"] = "respond"
            fields["status"] = response.status
            if context.span is not None:
                context.span.set_attribute("http.status_code", response.status)
        fields["duration_ms"] = context.elapsed_ms()
        context.close()
        self.log("request.complete", fields)

    def on_request_error(self, context: _ObservationContext | None, error: BaseException) -> None:
        if context is None:
            return
        fields = dict(context.fields)
        fields["error_type"] = type(error).__name__
        fields["duration_ms"] = context.elapsed_ms()
        if context.span is not None:
            context.span.record_exception(error)
            if self._status_cls is not None and self._status_error is not None:
                context.span.set_status(self._status_cls(self._status_error))
        context.close(error)
        self.log("request.error", fields, level=logging.ERROR)


__all__ = ["Observability", "ObservabilityConfig"]
