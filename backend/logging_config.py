"""
Structured Logging Configuration for PromptCraft
Features:
- JSON formatted logs for production
- Request correlation IDs
- Performance logging for chain runs
"""
import logging
import json
import sys
import time
import uuid
from typing import Optional
from datetime import datetime, timezone
from functools import wraps
from contextvars import ContextVar

# Context variable for request ID
request_id_var: ContextVar[str] = ContextVar('request_id', default='')

NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "asyncio")


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if hasattr(record, 'extra_data'):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class DevFormatter(logging.Formatter):
    """Human-readable formatter for development"""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']

        request_id = request_id_var.get()
        req_str = f"[{request_id[:8]}] " if request_id else ""

        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]

        message = f"{color}{timestamp}{reset} {req_str}{color}{record.levelname:8}{reset} {record.name}: {record.getMessage()}"

        extra = getattr(record, 'extra_data', None)
        if extra:
            message += " " + " ".join(f"{key}={value}" for key, value in extra.items())

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None
):
    """
    Configure logging for the application

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (for production)
        log_file: Optional file to write logs to
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(StructuredFormatter() if json_format else DevFormatter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(StructuredFormatter())  # Always JSON for files
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def generate_request_id() -> str:
    """Generate a unique request ID"""
    return str(uuid.uuid4())


def set_request_id(request_id: str):
    """Set the request ID for the current context"""
    return request_id_var.set(request_id)


def log_with_context(logger: logging.Logger, level: str, message: str, **extra):
    """Log a message with extra context data"""
    log_level = getattr(logging, level.upper())
    if not logger.isEnabledFor(log_level):
        return
    record = logger.makeRecord(
        logger.name,
        log_level,
        "(unknown)",
        0,
        message,
        (),
        None
    )
    record.extra_data = extra
    logger.handle(record)


def log_performance(logger: logging.Logger, operation: str):
    """Decorator to log coroutine duration"""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.time()

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                log_with_context(
                    logger, "ERROR",
                    f"{operation} failed: {str(e)}",
                    operation=operation,
                    duration_ms=int((time.time() - start_time) * 1000),
                    status="error",
                    error=str(e)
                )
                raise

            log_with_context(
                logger, "INFO",
                f"{operation} completed",
                operation=operation,
                duration_ms=int((time.time() - start_time) * 1000),
                status="success"
            )
            return result

        return wrapper

    return decorator
