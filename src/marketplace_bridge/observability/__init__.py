"""Logging, OpenTelemetry instrumentation and metrics for the bridge."""

from marketplace_bridge.observability.config import configure_logging, setup_observability
from marketplace_bridge.observability.decorators import traced

__all__ = ["setup_observability", "configure_logging", "traced"]
