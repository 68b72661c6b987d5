"""Logging setup and per-operation timing for the data layer.

Writer tasks and auth calls run under ``timed_operation``; each run is
tagged with a short correlation id in the debug log and counted in the
process-wide ``metrics`` collector.
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

DEFAULT_LOG_DIR = Path.home() / ".qingnote" / "logs"
LOG_FILE_NAME = "qingnote.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

F = TypeVar('F', bound=Callable[..., Any])

_logging_configured = False


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    console: bool = True,
) -> Path:
    """Attach a rotating ``qingnote.log`` handler to the ``qingnote`` logger.

    Calling it again with the same directory does not add a second handler.

    Returns:
        The log directory.
    """
    global _logging_configured

    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = (log_path / LOG_FILE_NAME).resolve()

    package_logger = logging.getLogger("qingnote")
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handlers = [h for h in package_logger.handlers if isinstance(h, RotatingFileHandler)]
    if not any(Path(h.baseFilename) == log_file for h in file_handlers):
        handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    has_console = any(
        type(h) is logging.StreamHandler for h in package_logger.handlers
    )
    if console and not has_console:
        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        package_logger.addHandler(stream)

    _logging_configured = True
    package_logger.info(f"Logging to {log_file}")
    return log_path


def is_logging_configured() -> bool:
    return _logging_configured


@dataclass
class OperationMetrics:
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            'count': self.count,
            'success_count': self.success_count,
            'error_count': self.error_count,
            'avg_duration_ms': round(self.total_ms / self.count, 2) if self.count else 0,
            'min_duration_ms': round(self.min_ms or 0, 2),
            'max_duration_ms': round(self.max_ms, 2),
            'last_error': self.last_error,
            'last_error_time': self.last_error_time.isoformat() if self.last_error_time else None,
        }


class MetricsCollector:
    """Counts and durations per operation name, safe across writer threads."""

    def __init__(self):
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        with self._lock:
            m = self._metrics[operation]
            m.count += 1
            m.total_ms += duration_ms
            m.min_ms = duration_ms if m.min_ms is None else min(m.min_ms, duration_ms)
            m.max_ms = max(m.max_ms, duration_ms)
            if success:
                m.success_count += 1
            else:
                m.error_count += 1
                m.last_error = error
                m.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {name: m.as_dict() for name, m in self._metrics.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across every operation recorded so far."""
        with self._lock:
            total = sum(m.count for m in self._metrics.values())
            succeeded = sum(m.success_count for m in self._metrics.values())
            return {
                'total_operations': total,
                'total_success': succeeded,
                'total_errors': total - succeeded,
                'overall_success_rate': succeeded / total if total else 1.0,
                'operations_tracked': list(self._metrics),
            }

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time the enclosed block and record it under ``operation``.

    Yields a dict carrying the ``correlation_id``; anything else the block
    stores in it is appended to the END log line.
    """
    info: Dict[str, Any] = {'correlation_id': uuid.uuid4().hex[:8]}
    tag = info['correlation_id']
    details = ', '.join(f'{k}={v}' for k, v in context.items())
    logger.debug(f"[{tag}] START {operation} ({details})")

    started = time.perf_counter()
    error: Optional[str] = None
    try:
        yield info
    except Exception as e:
        error = str(e)
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, elapsed_ms, error is None, error)
        extra = ', '.join(f'{k}={v}' for k, v in info.items() if k != 'correlation_id')
        outcome = 'OK' if error is None else f'ERROR: {error}'
        logger.debug(f"[{tag}] END {operation} ({elapsed_ms:.2f}ms) [{outcome}] {extra}")


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Run the decorated function under ``timed_operation``.

    The operation is recorded as ``operation_name``, or the function's own
    name when none is given.
    """
    def decorator(func: F) -> F:
        name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with timed_operation(name) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, tuple)):
                    op['result_count'] = len(result)
                return result

        return wrapper  # type: ignore
    return decorator
