"""
core/logging.py - Structured JSON logging for the router.

Context travels only via extra={"context": {...}}; process-wide fields
(service, operator address) come from set_global_context().
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

_global_context: dict[str, Any] = {}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line:

        {"timestamp": "...", "level": "INFO", "logger": "monirouter.execution.router",
         "message": "Transfer: tip_42 | base | SUCCESS",
         "context": {"service": "monirouter", "token": "tip_42", "tx_hash": "0x..."}}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = {**_global_context, **(getattr(record, "context", None) or {})}
        if record.exc_info:
            context["exception"] = self.formatException(record.exc_info)
        if context:
            entry["context"] = context

        return json.dumps(entry, default=str)


class ContextAdapter(logging.LoggerAdapter):
    """Merges the logger's bound context under each call's extra context."""

    def process(
        self, msg: str, kwargs: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        call_context = kwargs.get("extra", {}).get("context", {})
        kwargs["extra"] = {"context": {**self.extra, **call_context}}
        return msg, kwargs


def set_global_context(**kwargs: Any) -> None:
    """Fields added to every entry, e.g. set_global_context(operator=account.address)."""
    _global_context.update(kwargs)


def clear_global_context() -> None:
    _global_context.clear()


def get_logger(name: str, **context: Any) -> ContextAdapter:
    """
    Named logger whose entries always carry `context`.

    Example:
        logger = get_logger("monirouter.execution.executor", network="base")
    """
    return ContextAdapter(logging.getLogger(name), context)


def setup_logging(
    level: str = "INFO",
    json_output: bool = True,
    log_file: str | None = None,
) -> None:
    """
    Configure the root logger for the CLI.

    Logs go to stderr; `log_file` adds a second handler with the same
    format.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    if json_output:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for noisy in ("httpx", "httpcore", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def log_transfer(
    logger: ContextAdapter,
    token: str,
    network: str,
    status: str,
    tx_hash: str | None = None,
    error_kind: str | None = None,
    **extra: Any,
) -> None:
    """Log a terminal transfer outcome with standard context."""
    logger.info(
        f"Transfer: {token[:24]} | {network} | {status}",
        extra={
            "context": {
                "token": token,
                "network": network,
                "status": status,
                "tx_hash": tx_hash,
                "error_kind": error_kind,
                **extra,
            }
        },
    )


def log_failover(
    logger: ContextAdapter,
    network: str,
    index: int,
    endpoint: str,
    **extra: Any,
) -> None:
    """Log an endpoint cursor advance."""
    logger.warning(
        f"RPC failover [{network}] -> {endpoint}",
        extra={
            "context": {
                "network": network,
                "endpoint_index": index,
                "endpoint": endpoint,
                **extra,
            }
        },
    )


def log_error(
    logger: ContextAdapter,
    error_code: str,
    message: str,
    **extra: Any,
) -> None:
    """Log an error with standard context."""
    logger.error(
        f"[{error_code}] {message}",
        extra={
            "context": {
                "error_code": error_code,
                **extra,
            }
        },
    )
