"""
Span sources for livereindex components.

Stores, the pipeline, the orchestrator and the observer never import
OpenTelemetry themselves. Each takes an optional ``tracer`` and otherwise
builds one with ``create_tracer(__name__, enable_tracing)``:

    >>> tracer = MockTracer()
    >>> store = InMemorySearchStore(tracer=tracer)
    >>> await store.put("index-a", 1, {"title": "x"})
    >>> tracer.span_names
    ['inmemory_search_store.put']

Three tracers ship with the package. NullTracer does nothing, MockTracer
records what would have been traced, and OpenTelemetryTracer opens real
spans on the globally configured provider.
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator, Mapping
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from opentelemetry import trace

if TYPE_CHECKING:
    from opentelemetry.trace import Span

SpanAttributes = Mapping[str, Any]


@runtime_checkable
class Tracer(Protocol):
    """What a component needs from a tracer: a span factory and an on/off flag."""

    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> AbstractContextManager[Span | None]:
        """Open a span named ``name`` for the duration of the ``with`` block."""
        ...

    @property
    def enabled(self) -> bool:
        """Whether spans opened by this tracer go anywhere."""
        ...


class NullTracer:
    """Tracer used when tracing is switched off. Spans yield None."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> Iterator[None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


def _otel_attributes(attributes: SpanAttributes | None) -> dict[str, Any]:
    # OpenTelemetry rejects None values; an unset secondary index is simply omitted.
    if not attributes:
        return {}
    return {key: value for key, value in attributes.items() if value is not None}


class OpenTelemetryTracer:
    """
    Opens spans through ``opentelemetry.trace``.

    Works without an SDK: the API then returns non-recording spans, so a
    deployment that never configures a provider pays almost nothing.

    Args:
        tracer_name: Instrumentation scope, normally the module's ``__name__``.
    """

    def __init__(self, tracer_name: str) -> None:
        self.tracer_name = tracer_name
        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(name, attributes=_otel_attributes(attributes))

    @property
    def enabled(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"OpenTelemetryTracer({self.tracer_name!r})"


class MockTracer:
    """
    Records ``(name, attributes)`` for every span opened, for test assertions.

    A span is recorded when it is opened, so one whose body raises still
    shows up in ``spans``.
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, SpanAttributes | None]] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> Iterator[None]:
        self.spans.append((name, attributes))
        yield None

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """Return an OpenTelemetryTracer for ``name``, or a NullTracer when disabled."""
    return OpenTelemetryTracer(name) if enable_tracing else NullTracer()


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
]
