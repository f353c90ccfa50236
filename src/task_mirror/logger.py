import json
import logging
import os
import sys

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FORMATS = ("text", "json")


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg (and exc)."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(log_format: str, with_name: bool) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter(datefmt=DATE_FORMAT)
    pattern = "[%(asctime)s] [%(levelname)s] "
    pattern += "%(name)s %(message)s" if with_name else "%(message)s"
    return logging.Formatter(pattern, datefmt=DATE_FORMAT)


def resolve_level(debug: bool = False, level: str | None = None) -> int:
    """Pick the root level: ``debug`` > ``LOG_LEVEL`` > *level* > INFO."""
    if debug:
        return logging.DEBUG
    name = os.getenv("LOG_LEVEL", level or "INFO").upper()
    return getattr(logging, name, logging.INFO)


def setup_logging(
    debug: bool = False,
    log_file: str | None = None,
    log_format: str = "text",
    level: str | None = None,
) -> None:
    """
    Configure logging for the command-line tool.

    Records go to stderr, so stdout stays clean for ``sync --json``.  With
    *log_file* they are appended there too, with the logger name included.

    Args:
        debug: Force DEBUG regardless of LOG_LEVEL.
        log_file: Optional file that receives a copy of every record.
        log_format: "text" or "json" (one object per line).
        level: Level from the config file, used when LOG_LEVEL is unset.
    """
    if log_format not in LOG_FORMATS:
        raise ValueError(
            f"Unknown log format '{log_format}' (expected one of {LOG_FORMATS})"
        )
    log_level = resolve_level(debug, level)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(_formatter(log_format, with_name=False))
    handlers: list[logging.Handler] = [stderr_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setFormatter(_formatter(log_format, with_name=True))
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers)

    # Silence HTTP stack unless DEBUG
    if log_level != logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("requests").setLevel(logging.WARNING)
