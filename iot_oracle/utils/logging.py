"""Structured logging configuration."""

import logging
import sys
from typing import Any

import structlog
from pythonjsonlogger import jsonlogger

from iot_oracle.config import get_settings


def setup_logging() -> None:
    """Configure structured logging for the application."""
    settings = get_settings()

    # Configure standard library logging
    log_level = getattr(logging, settings.log_level)

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "json":
        formatter = jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "timestamp"},
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer() if settings.log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class ActionLogger:
    """Specialized logger for assistant action blocks and their effects."""

    def __init__(self, component: str):
        self.component = component
        self.logger = get_logger(component)

    def log_decoded(self, kind: str, style: str, size: int) -> None:
        """Log a block that was located and decoded."""
        self.logger.debug(
            "action_block_decoded",
            component=self.component,
            kind=kind,
            style=style,
            size=size,
        )

    def log_decode_failure(self, kind: str, error: str, excerpt: str) -> None:
        """Log a block whose markers matched but whose JSON did not parse."""
        self.logger.warning(
            "action_block_decode_failed",
            component=self.component,
            kind=kind,
            error=error,
            excerpt=excerpt[:200],
        )

    def log_dispatch(
        self,
        kind: str,
        success: bool,
        duration_ms: float,
        message: str,
        **kwargs: Any,
    ) -> None:
        """Log the outcome of a single action handler."""
        log = self.logger.info if success else self.logger.warning
        log(
            "action_dispatched",
            component=self.component,
            kind=kind,
            success=success,
            duration_ms=duration_ms,
            message=message,
            **kwargs,
        )

    def log_persistence_failure(
        self,
        operation: str,
        collection: str,
        entity_id: str,
        error: str,
        queued: bool,
    ) -> None:
        """Log a remote write that failed after the local update."""
        self.logger.error(
            "persistence_failed",
            component=self.component,
            operation=operation,
            collection=collection,
            entity_id=entity_id,
            error=error,
            queued=queued,
        )


class AgentLogger:
    """Specialized logger for LLM-backed agents."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        self.logger = get_logger(agent_id)

    def log_interaction(
        self,
        action: str,
        conversation_id: str | None = None,
        duration_ms: float | None = None,
        tokens: int | None = None,
        **kwargs: Any,
    ) -> None:
        """Log an agent interaction with structured data."""
        log_data = {
            "agent_id": self.agent_id,
            "action": action,
        }

        if conversation_id is not None:
            log_data["conversation_id"] = conversation_id
        if duration_ms is not None:
            log_data["duration_ms"] = duration_ms
        if tokens is not None:
            log_data["tokens"] = tokens

        log_data.update(kwargs)
        self.logger.info("agent_interaction", **log_data)

    def log_error(
        self,
        error: str,
        conversation_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Log an error."""
        self.logger.error(
            "agent_error",
            agent_id=self.agent_id,
            conversation_id=conversation_id,
            error=error,
            **kwargs,
        )
