"""Controller entry point.

The controller is embedded by a host process that owns the backend
client (credentials and transport are the host's concern). The host calls
``main(client, manifests)``, which loads configuration from the
environment, installs JSON logging and reconciles every manifest
concurrently until each settles or a shutdown signal arrives.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

from .backend import BackendClient
from .config import ConfigurationError, ControllerConfig
from .manager import ResourceManager
from .metrics import MetricsSink
from .reconciler import ReconcileAction, Reconciler
from .spec_loader import SpecLoadError, load_manifest

# LogRecord attributes that are not user-supplied ``extra`` fields
_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add extra fields from the record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging with JSON output on stdout."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Reduce noise from the HTTP stack
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_reconciler(
    config: ControllerConfig,
    client: BackendClient,
    metrics: MetricsSink | None = None,
) -> Reconciler:
    """Wire a Reconciler from explicit collaborators."""
    manager = ResourceManager(config, client, metrics=metrics)
    return Reconciler(manager)


async def main(
    client: BackendClient,
    manifests: Sequence[Path],
    metrics: MetricsSink | None = None,
) -> int:
    """Run the controller over a set of manifests.

    Returns:
        Exit code: 0 when every resource settled, 1 on configuration or
        manifest errors, 3 when any resource ended terminal or unsettled.
    """
    try:
        config = ControllerConfig.from_env()
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__name__).error("Configuration error", extra={"error": str(e)})
        return 1

    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    try:
        resources = [load_manifest(path) for path in manifests]
    except SpecLoadError as e:
        logger.error("Manifest loading failed", extra={"error": str(e)})
        return 1

    logger.info(
        "Starting API controller",
        extra={
            "account_id": config.account_id,
            "region": config.region,
            "controller_version": config.controller_version,
            "resources": [r.identity for r in resources],
        },
    )

    reconciler = build_reconciler(config, client, metrics)

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal", extra={"signal": sig.name})
        reconciler.shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    try:
        results = await asyncio.gather(*(reconciler.run(r) for r in resources))
    except Exception as e:
        logger.exception("Unhandled exception", extra={"error": str(e)})
        return 1
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)

    unsettled = [
        r.resource.identity
        for r in results
        if r is not None and r.action is not ReconcileAction.DONE
    ]
    if unsettled:
        logger.error("Resources did not settle", extra={"resources": unsettled})
        return 3

    logger.info("Controller stopped")
    return 0
