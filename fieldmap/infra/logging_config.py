# fieldmap/infra/logging_config.py
import logging
import sys
import json
from datetime import datetime, timezone

# Dispatch context carried in ``extra``, with the short console label for each
_CONTEXT_FIELDS = {
    "session_id": "session",
    "job_id": "job",
    "worker_id": "worker",
    "alert_id": "alert",
}

_NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "asyncio")


def _context(record: logging.LogRecord) -> dict:
    return {name: getattr(record, name) for name in _CONTEXT_FIELDS if hasattr(record, name)}


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log shipping"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
            **_context(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored single-line output for a developer terminal"""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        clock = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S")

        tags = " ".join(
            # Session ids are long; eight characters are enough to tell them apart
            f"{_CONTEXT_FIELDS[name]}={str(value)[:8] if name == 'session_id' else value}"
            for name, value in _context(record).items()
        )
        line = f"{color}{clock} {record.levelname:<8}{self.RESET} {record.name}"
        if tags:
            line += f" [{tags}]"
        line += f" - {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = "INFO", use_json: bool = False) -> None:
    """
    Route every logger to stdout

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Emit JSON lines instead of colored console output
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if use_json else ConsoleFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info("Logging configured: level=%s json=%s", level, use_json)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext(logging.LoggerAdapter):
    """Logger that stamps dispatch context (session, job, worker, alert) on every record"""

    def __init__(self, logger: logging.Logger, **context: str | None):
        unknown = set(context) - set(_CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
        super().__init__(logger, {k: v for k, v in context.items() if v is not None})

    def process(self, msg, kwargs):
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs


def mask_coordinates(lat: float, lon: float) -> str:
    """Mask GPS coordinates for logging.

    Example: ``mask_coordinates(-16.918, 145.778)`` → ``"-16.9**, 145.8**"``

    One decimal (roughly ±10 km) is enough to debug with and does not expose
    a worker's exact position.
    """
    return f"{lat:.1f}**, {lon:.1f}**"
