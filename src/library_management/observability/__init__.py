"""Logfire observability for the Library Management MCP Server."""

import logging

import logfire

from .config import ObservabilityConfig
from .decorators import trace_resource, trace_tool

logger = logging.getLogger(__name__)

_config: ObservabilityConfig | None = None


def initialize_observability(config: ObservabilityConfig | None = None) -> bool:
    """Configure Logfire once at server start. Returns False when disabled."""
    global _config  # noqa: PLW0603
    _config = config or ObservabilityConfig()

    if not _config.enabled:
        logger.debug("Observability disabled via configuration")
        return False

    logfire.configure(
        token=_config.token or None,
        service_name=_config.service_name,
        environment=_config.environment,
        send_to_logfire=_config.should_send,
        console=None if _config.console_output else False,
    )
    logger.info(
        "Logfire configured (environment=%s, export=%s)",
        _config.environment,
        _config.should_send,
    )
    return True


__all__ = [
    "ObservabilityConfig",
    "initialize_observability",
    "trace_resource",
    "trace_tool",
]
