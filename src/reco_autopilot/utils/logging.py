"""Console and JSON-lines logging for workflow runs."""

import logging
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


# Structured fields that workflows attach to log records via LogContext
CONTEXT_FIELDS = ('repository', 'commit_id', 'category', 'step', 'duration')

# Chatty third-party loggers kept at WARNING
QUIET_LOGGERS = ('boto3', 'botocore', 'urllib3', 'uvicorn.access')

LOG_FILE_PATTERN = 'autopilot-{date}.jsonl'


def context_of(record: logging.LogRecord) -> Dict[str, Any]:
    """Workflow fields present on a record, in CONTEXT_FIELDS order."""
    return {field: getattr(record, field) for field in CONTEXT_FIELDS if hasattr(record, field)}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for the log file."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.utcnow().isoformat() + 'Z',
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update(context_of(record))
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Short colored lines: time, level, then [repository] [step] message."""

    LEVEL_COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        context = context_of(record)
        prefix = ''.join(f"[{context[key]}] " for key in ('repository', 'step') if key in context)
        color = self.LEVEL_COLORS.get(record.levelname, '')
        line = (
            f"{datetime.utcnow():%H:%M:%S} {color}{record.levelname:8}{self.RESET} "
            f"{prefix}{record.getMessage()}"
        )
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ConsoleFormatter())
    return handler


def _file_handler(log_dir: str) -> logging.Handler:
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / LOG_FILE_PATTERN.format(date=datetime.utcnow().strftime('%Y%m%d'))
    handler = logging.FileHandler(path)
    # The file keeps everything regardless of the console level
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(log_level: str = 'info', log_dir: Optional[str] = '.autopilot/logs') -> None:
    """Configure the root logger for the CLI and the HTTP service.

    Args:
        log_level: Console level name (debug, info, warning, error)
        log_dir: Where daily JSON-lines files go; None disables the file
    """
    level = getattr(logging, log_level.upper())

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG if log_dir else level)
    root.addHandler(_console_handler(level))
    if log_dir:
        root.addHandler(_file_handler(log_dir))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger; pass ``__name__``."""
    return logging.getLogger(name)


class LogContext(logging.LoggerAdapter):
    """Logger adapter that stamps structured workflow fields onto records.

    Fields are bound to the adapter instance, not to the logging module,
    so each workflow run on a worker thread carries only its own fields.
    None values are dropped when binding.
    """

    def __init__(self, logger: logging.Logger, **fields: Any):
        super().__init__(logger, {key: value for key, value in fields.items() if value is not None})

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **(kwargs.get('extra') or {})}
        return msg, kwargs

    def bind(self, **fields: Any) -> 'LogContext':
        """Return a new context with additional fields."""
        return LogContext(self.logger, **{**self.extra, **fields})
