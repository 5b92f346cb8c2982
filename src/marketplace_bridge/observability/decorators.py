"""OpenTelemetry tracing decorators."""

import functools
import inspect
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Span

F = TypeVar("F", bound=Callable[..., Any])

TRACER_NAME = "marketplace-bridge"


def _annotate(span: Span, func: Callable[..., Any], attributes: Iterable[str], kwargs: dict[str, Any]) -> None:
    span.set_attribute("function.name", func.__qualname__)
    for name in attributes:
        value = kwargs.get(name)
        if value is not None:
            span.set_attribute(f"bridge.{name}", str(value))


def _record_failure(span: Span, error: Exception) -> None:
    span.set_attribute("success", False)
    span.set_attribute("error.type", type(error).__name__)
    span.set_attribute("error.message", str(error))
    span.record_exception(error)


def traced(span_name: str | None = None, attributes: Iterable[str] = ("tenant_id",)) -> Callable[[F], F]:
    """Wrap a function in an OpenTelemetry span.

    Keyword arguments named in `attributes` are copied onto the span as
    `bridge.<name>`. Exceptions are recorded on the span and re-raised.

    Args:
        span_name: Name for the span (defaults to the function name)
        attributes: Keyword argument names to record as span attributes

    Example:
        @traced("catalog_pull")
        async def pull(self, tenant_id: str) -> int:
            ...
    """
    attribute_names = tuple(attributes)

    def decorator(func: F) -> F:
        name = span_name or func.__name__
        tracer = trace.get_tracer(TRACER_NAME)

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with tracer.start_as_current_span(name, record_exception=False) as span:
                    _annotate(span, func, attribute_names, kwargs)
                    try:
                        result = await func(*args, **kwargs)
                    except Exception as e:
                        _record_failure(span, e)
                        raise
                    span.set_attribute("success", True)
                    return result

            return async_wrapper  # type: ignore

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with tracer.start_as_current_span(name, record_exception=False) as span:
                _annotate(span, func, attribute_names, kwargs)
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    _record_failure(span, e)
                    raise
                span.set_attribute("success", True)
                return result

        return sync_wrapper  # type: ignore

    return decorator
