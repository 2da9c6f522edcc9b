"""Logging setup and per-operation timing for the NoteX server.

Service methods are wrapped with ``traced`` and MCP tools with
``timed_operation``; both feed the process-wide ``metrics`` collector that
the status tool reports from.
"""
import functools
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "notex_mcp"
DEFAULT_LOG_DIR = Path.home() / ".notex" / "logs"
LOG_FILE_NAME = "notex.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Keyword arguments copied into the trace context of a traced call
TRACE_CONTEXT_KEYS = ("note_id", "folder_id", "item_id", "title")

F = TypeVar('F', bound=Callable[..., Any])

_logging_configured = False


def _has_console_handler(target: logging.Logger) -> bool:
    return any(
        type(handler) is logging.StreamHandler for handler in target.handlers
    )


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    console: bool = True,
) -> Path:
    """Send ``notex_mcp.*`` log records to a rotating file.

    Args:
        log_dir: Where ``notex.log`` is written. Defaults to ~/.notex/logs/
        level: Level for the package logger and its handlers.
        max_bytes: Size at which the log file rotates.
        backup_count: Rotated files to keep.
        console: Also write to stderr. stdout belongs to the MCP stdio transport.

    Returns:
        The log directory.

    Raises:
        OSError: If the directory or file cannot be created.
    """
    global _logging_configured

    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    handlers = [
        RotatingFileHandler(
            log_path / LOG_FILE_NAME,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    ]
    if console and not _has_console_handler(package_logger):
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    _logging_configured = True
    package_logger.info(f"Logging to {log_path / LOG_FILE_NAME}")
    return log_path


def is_logging_configured() -> bool:
    return _logging_configured


@dataclass
class OperationStats:
    """Running totals for one operation name."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: Optional[float] = None
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None

    def add(self, duration_ms: float, success: bool, error: Optional[str]) -> None:
        self.count += 1
        self.total_duration_ms += duration_ms
        if self.min_duration_ms is None or duration_ms < self.min_duration_ms:
            self.min_duration_ms = duration_ms
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if success:
            self.success_count += 1
            return
        self.error_count += 1
        self.last_error = error
        self.last_error_time = datetime.now(timezone.utc)

    def snapshot(self) -> Dict[str, Any]:
        average = self.total_duration_ms / self.count if self.count else 0.0
        return {
            'count': self.count,
            'success_count': self.success_count,
            'error_count': self.error_count,
            'avg_duration_ms': round(average, 2),
            'min_duration_ms': round(self.min_duration_ms or 0.0, 2),
            'max_duration_ms': round(self.max_duration_ms, 2),
            'last_error': self.last_error,
            'last_error_time': (
                self.last_error_time.isoformat() if self.last_error_time else None
            ),
        }


class MetricsCollector:
    """Thread-safe timing and outcome counters keyed by operation name
    (``on_note_content_saved``, ``notex_links``, ...)."""

    def __init__(self):
        self._stats: Dict[str, OperationStats] = defaultdict(OperationStats)
        self._lock = Lock()
        self._started = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        with self._lock:
            self._stats[operation].add(duration_ms, success, error)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-operation snapshot."""
        with self._lock:
            return {name: stats.snapshot() for name, stats in self._stats.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across every operation plus the slowest one on average."""
        with self._lock:
            stats = list(self._stats.items())
            uptime = (datetime.now(timezone.utc) - self._started).total_seconds()

        total = sum(s.count for _, s in stats)
        succeeded = sum(s.success_count for _, s in stats)
        slowest = max(
            stats,
            key=lambda pair: pair[1].total_duration_ms / pair[1].count,
            default=None,
        )
        return {
            'uptime_seconds': uptime,
            'total_operations': total,
            'total_success': succeeded,
            'total_errors': total - succeeded,
            'overall_success_rate': succeeded / total if total else 1.0,
            'slowest_operation': slowest[0] if slowest else None,
            'operations_tracked': sorted(name for name, _ in stats),
        }

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()
            self._started = datetime.now(timezone.utc)


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time a block, record the outcome in ``metrics`` and log it at DEBUG.

    Yields a dict the block can fill with result details (``note_id``,
    ``result_count``, ...); they are appended to the closing log line.
    Exceptions are recorded and re-raised.

    Example:
        with timed_operation('notex_links', note_id=note_id) as op:
            links = service.get_backlinks(note_id)
            op['result_count'] = len(links)
    """
    ref = uuid.uuid4().hex[:8]
    details: Dict[str, Any] = {}
    described = ' '.join(f'{k}={v}' for k, v in context.items())
    logger.debug(f"[{ref}] {operation} begin {described}".rstrip())

    error: Optional[str] = None
    started = time.perf_counter()
    try:
        yield details
    except Exception as e:
        error = str(e)
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, elapsed_ms, error is None, error)
        outcome = 'ok' if error is None else f'failed: {error}'
        extra = ' '.join(f'{k}={v}' for k, v in details.items())
        logger.debug(
            f"[{ref}] {operation} {outcome} in {elapsed_ms:.2f}ms {extra}".rstrip()
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Run the decorated service method inside ``timed_operation``.

    Recognised keyword arguments (see ``TRACE_CONTEXT_KEYS``) become log
    context; list results are counted.

    Example:
        @traced('create_note')
        def create_note(self, title: str, content: str) -> Note:
            ...
    """
    def decorator(func: F) -> F:
        name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            context = {
                key: str(kwargs[key])[:50]
                for key in TRACE_CONTEXT_KEYS
                if kwargs.get(key) is not None
            }
            with timed_operation(name, **context) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, tuple)):
                    op['result_count'] = len(result)
                return result

        return wrapper  # type: ignore
    return decorator
