"""
Structured logging for Dashboard Patcher.
Appends events as JSON lines to a file (local runs) and mirrors every event
to the standard logging module.
"""

import json
import logging
import re
import time
from datetime import datetime, UTC
from typing import Dict, List, Optional
from enum import Enum
from dataclasses import dataclass, asdict
from pathlib import Path

try:
    from config import get_settings
    CONFIG_LOADED = True
except ImportError:
    CONFIG_LOADED = False


_USERINFO_RE = re.compile(r'^(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)[^@/]*@')


def mask_uri(uri: str) -> str:
    """Hide the userinfo part of a connection URI."""
    if not isinstance(uri, str):
        return repr(uri)
    return _USERINFO_RE.sub(r'\g<scheme>***@', uri)


class LogLevel(Enum):
    """Log levels for different types of events."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogCategory(Enum):
    """Categories for different types of operations."""
    CONNECTION = "connection"
    DATABASE = "database"
    VALIDATION = "validation"
    HTTP = "http"
    SYSTEM = "system"


@dataclass
class LogEntry:
    """Structured log entry."""
    timestamp: str
    level: str
    category: str
    operation: str
    message: str
    data: Optional[Dict] = None
    duration_ms: Optional[float] = None
    success: bool = True
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


class PatcherLogger:
    """Event logger for the admin panel."""

    def __init__(self, log_file: Optional[str] = None, destination: Optional[str] = None):
        self._settings = get_settings() if CONFIG_LOADED else None
        if self._settings:
            log_file = log_file or self._settings.get_log_file_path("events_log")
            destination = destination or self._settings.logging.destination
        self.log_file = log_file or "logs/patcher_events.jsonl"
        self.destination = destination or "file"
        self.file_path: Optional[Path] = None

        self._setup_logging()

    def _setup_logging(self):
        """Setup the JSON lines file and, if nobody did yet, standard logging."""
        if self.destination == "file":
            try:
                events_path = Path(self.log_file)
                events_path.parent.mkdir(parents=True, exist_ok=True)
                self.file_path = events_path
            except (OSError, PermissionError):
                # Read-only filesystem - console logging only
                self.file_path = None

        if not logging.getLogger().handlers:
            level = getattr(logging, self._settings.logging.level, logging.INFO) if self._settings else logging.INFO
            fmt = self._settings.logging.format if self._settings else '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            handlers: List[logging.Handler] = [logging.StreamHandler()]
            if self.file_path:
                main_log = Path(self._settings.get_log_file_path("main_log") if self._settings else "logs/patcher.log")
                try:
                    main_log.parent.mkdir(parents=True, exist_ok=True)
                    handlers.append(logging.FileHandler(main_log))
                except (OSError, PermissionError):
                    pass
            logging.basicConfig(level=level, format=fmt, handlers=handlers)

        self._std = logging.getLogger("patcher")

    def _save_to_file(self, entry: LogEntry):
        """Append log entry to the JSON lines file."""
        if not self.file_path:
            return

        try:
            with open(self.file_path, 'a') as f:
                f.write(json.dumps(entry.to_dict()) + '\n')
        except OSError as e:
            self._std.error(f"Failed to save log entry: {e}")

    def log(self,
            level: LogLevel,
            category: LogCategory,
            operation: str,
            message: str,
            data: Optional[Dict] = None,
            duration_ms: Optional[float] = None,
            success: bool = True,
            error: Optional[str] = None):
        """Log an event with structured data."""

        entry = LogEntry(
            timestamp=datetime.now(UTC).isoformat(),
            level=level.value,
            category=category.value,
            operation=operation,
            message=message,
            data=data,
            duration_ms=duration_ms,
            success=success,
            error=error
        )

        self._save_to_file(entry)

        log_msg = f"[{category.value}] {operation}: {message}"
        if error:
            log_msg += f" | Error: {error}"
        self._std.log(getattr(logging, level.value), log_msg)

    def info(self, category: LogCategory, operation: str, message: str, **kwargs):
        """Log info message."""
        self.log(LogLevel.INFO, category, operation, message, **kwargs)

    def warning(self, category: LogCategory, operation: str, message: str, **kwargs):
        """Log warning message."""
        self.log(LogLevel.WARNING, category, operation, message, **kwargs)

    def error(self, category: LogCategory, operation: str, message: str, **kwargs):
        """Log error message."""
        self.log(LogLevel.ERROR, category, operation, message, success=False, **kwargs)

    def debug(self, category: LogCategory, operation: str, message: str, **kwargs):
        """Log debug message."""
        self.log(LogLevel.DEBUG, category, operation, message, **kwargs)


class OperationTimer:
    """Context manager for timing operations."""

    def __init__(self, logger: PatcherLogger, category: LogCategory, operation: str,
                 data: Optional[Dict] = None):
        self.logger = logger
        self.category = category
        self.operation = operation
        self.data = data
        self.start_time = None
        self.success = True
        self.error_msg = None

    def __enter__(self):
        self.start_time = time.time()
        self.logger.debug(self.category, self.operation, "Operation started", data=self.data)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = (time.time() - self.start_time) * 1000

        if exc_type is not None:
            self.success = False
            self.error_msg = str(exc_val)
            message = f"Operation failed: {self.error_msg}"
            level = LogLevel.ERROR
        else:
            message = f"Operation completed successfully in {duration_ms:.2f}ms"
            level = LogLevel.INFO

        self.logger.log(
            level=level,
            category=self.category,
            operation=self.operation,
            message=message,
            data=self.data,
            duration_ms=duration_ms,
            success=self.success,
            error=self.error_msg
        )


# Global logger instance
_global_logger = None

def get_logger() -> PatcherLogger:
    """Get global logger instance."""
    global _global_logger
    if _global_logger is None:
        _global_logger = PatcherLogger()
    return _global_logger
