"""Logging setup and stage timing.

- console 與 rotating file 日誌 (application.log / errors.log / performance.log)
- 擷取流程各階段的耗時、記憶體與 CPU 量測，逐筆寫入 performance.log
"""

import functools
import json
import logging
import logging.handlers
import sys
import time
import traceback
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import psutil

MB = 1024 * 1024


class LogLevel(Enum):
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


class LogFormat(Enum):
    """日誌格式"""
    SIMPLE = "simple"
    DETAILED = "detailed"
    JSON = "json"
    STRUCTURED = "structured"


@dataclass
class PerformanceMetric:
    """一次量測的結果 (performance.log 的一行)"""
    operation: str
    duration: float
    rss_mb: float
    memory_delta_mb: float
    cpu_percent: float
    success: bool
    error_message: Optional[str] = None
    context: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StructuredFormatter(logging.Formatter):
    """Renders records as one line of text or as JSON.

    The ``operation``, ``performance_metric`` and ``error_context`` extras
    set by this package are carried into the JSON output.
    """

    EXTRA_FIELDS = ('operation', 'performance_metric', 'error_context')

    def __init__(self, format_type: LogFormat = LogFormat.STRUCTURED):
        super().__init__()
        self.format_type = format_type

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).isoformat()
        message = record.getMessage()

        if self.format_type == LogFormat.SIMPLE:
            return f"{timestamp} [{record.levelname}] {message}"
        if self.format_type == LogFormat.DETAILED:
            return (f"{timestamp} [{record.levelname}] "
                    f"{record.name}:{record.funcName}:{record.lineno} - {message}")

        log_data: Dict[str, Any] = {
            'timestamp': timestamp,
            'level': record.levelname,
            'logger': record.name,
            'message': message,
            'function': record.funcName,
            'line': record.lineno,
        }
        for name in self.EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info and record.exc_info[0] is not None:
            log_data['exception'] = ''.join(traceback.format_exception(*record.exc_info))

        indent = 2 if self.format_type == LogFormat.STRUCTURED else None
        return json.dumps(log_data, ensure_ascii=False, default=str, indent=indent)


class PerformanceMonitor:
    """Measures a block and logs the result; nothing is retained."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.process = psutil.Process()

    @contextmanager
    def monitor_operation(self, operation_name: str, context: Optional[Dict[str, Any]] = None):
        rss_before = self.process.memory_info().rss / MB
        self.process.cpu_percent()  # primes the next reading
        started = time.perf_counter()

        error_message = None
        try:
            yield operation_name
        except Exception as e:
            error_message = str(e)
            raise
        finally:
            rss_after = self.process.memory_info().rss / MB
            metric = PerformanceMetric(
                operation=operation_name,
                duration=time.perf_counter() - started,
                rss_mb=rss_after,
                memory_delta_mb=rss_after - rss_before,
                cpu_percent=self.process.cpu_percent(),
                success=error_message is None,
                error_message=error_message,
                context=context
            )
            self._log_metric(metric)

    def _log_metric(self, metric: PerformanceMetric):
        status = "完成" if metric.success else "失敗"
        self.logger.log(
            logging.INFO if metric.success else logging.WARNING,
            f"{metric.operation} {status}: {metric.duration:.3f}s "
            f"(記憶體 {metric.memory_delta_mb:+.2f}MB, CPU {metric.cpu_percent:.1f}%)",
            extra={'performance_metric': metric.to_dict(), 'operation': metric.operation}
        )


class LoggingManager:
    """Owns the handlers this package puts on the root logger."""

    def __init__(self,
                 log_dir: Optional[str] = None,
                 log_level: LogLevel = LogLevel.INFO,
                 log_format: LogFormat = LogFormat.SIMPLE,
                 enable_console: bool = True,
                 enable_file: bool = True,
                 enable_performance_monitoring: bool = True,
                 max_log_size: int = 10 * MB,
                 backup_count: int = 5):

        self.log_dir = Path(log_dir) if log_dir else Path.home() / '.tw-holidays' / 'logs'
        self.log_level = log_level
        self.log_format = log_format
        self.enable_console = enable_console
        self.enable_file = enable_file
        self.max_log_size = max_log_size
        self.backup_count = backup_count
        self._handlers: List[logging.Handler] = []

        self.performance_monitor = PerformanceMonitor() if enable_performance_monitoring else None

        if self.enable_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        self._setup_logging()

    def _setup_logging(self):
        logging.getLogger().setLevel(self.log_level.value)

        # foreign handlers (pytest, an embedding application) are left alone
        self._remove_handlers()

        formatter = StructuredFormatter(self.log_format)

        if self.enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(self.log_level.value)
            console_handler.setFormatter(formatter)
            self._add_handler(console_handler)

        if not self.enable_file:
            return

        self._add_handler(self._rotating_handler('application.log', self.log_level.value, formatter))
        self._add_handler(self._rotating_handler('errors.log', logging.ERROR, formatter))

        if self.performance_monitor:
            perf_handler = self._rotating_handler('performance.log', logging.INFO,
                                                  StructuredFormatter(LogFormat.JSON))
            perf_handler.addFilter(lambda record: hasattr(record, 'performance_metric'))
            self._add_handler(perf_handler)

    def _rotating_handler(self, filename: str, level: int,
                          formatter: logging.Formatter) -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / filename,
            maxBytes=self.max_log_size,
            backupCount=self.backup_count,
            encoding='utf-8'
        )
        handler.setLevel(level)
        handler.setFormatter(formatter)
        return handler

    def _add_handler(self, handler: logging.Handler):
        logging.getLogger().addHandler(handler)
        self._handlers.append(handler)

    def _remove_handlers(self):
        root_logger = logging.getLogger()
        for handler in self._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers = []

    def monitor_operation(self, operation_name: str, context: Optional[Dict[str, Any]] = None):
        """Context manager measuring one stage; a no-op when monitoring is off."""
        if self.performance_monitor:
            return self.performance_monitor.monitor_operation(operation_name, context)
        return _unmonitored()

    def cleanup(self):
        self._remove_handlers()


@contextmanager
def _unmonitored():
    yield None


def log_performance(operation_name: Optional[str] = None,
                    context: Optional[Dict[str, Any]] = None):
    """Measure every call of the decorated function."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            op_name = operation_name or f"{func.__module__}.{func.__name__}"
            with get_logging_manager().monitor_operation(op_name, context):
                return func(*args, **kwargs)

        return wrapper
    return decorator


def log_function_call(log_args: bool = False, log_result: bool = False):
    """Debug-log entry and exit of the decorated function; failures at ERROR."""
    def decorator(func):
        func_name = f"{func.__module__}.{func.__name__}"
        logger = logging.getLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            if log_args:
                logger.debug(f"呼叫 {func_name} args={args!r} kwargs={kwargs!r}", extra={'operation': func_name})
            else:
                logger.debug(f"呼叫 {func_name}", extra={'operation': func_name})

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(f"{func_name} 失敗: {type(e).__name__}: {e}", extra={'operation': func_name})
                raise

            if log_result:
                logger.debug(f"{func_name} 回傳 {result!r}", extra={'operation': func_name})
            else:
                logger.debug(f"{func_name} 完成", extra={'operation': func_name})
            return result

        return wrapper
    return decorator


_global_logging_manager: Optional[LoggingManager] = None


def get_logging_manager() -> LoggingManager:
    global _global_logging_manager
    if _global_logging_manager is None:
        _global_logging_manager = LoggingManager()
    return _global_logging_manager


def setup_logging(
    log_dir: Optional[str] = None,
    log_level: LogLevel = LogLevel.INFO,
    log_format: LogFormat = LogFormat.SIMPLE,
    enable_console: bool = True,
    enable_file: bool = True,
    enable_performance_monitoring: bool = True,
    debug_mode: bool = False
) -> LoggingManager:
    """Configure logging for the process and return the manager.

    ``debug_mode`` overrides ``log_level`` with DEBUG. Calling this again
    replaces the handlers installed by the previous call.
    """
    global _global_logging_manager

    if _global_logging_manager is not None:
        _global_logging_manager.cleanup()

    _global_logging_manager = LoggingManager(
        log_dir=log_dir,
        log_level=LogLevel.DEBUG if debug_mode else log_level,
        log_format=log_format,
        enable_console=enable_console,
        enable_file=enable_file,
        enable_performance_monitoring=enable_performance_monitoring
    )
    return _global_logging_manager


def cleanup_logging():
    """釋放全域日誌資源"""
    global _global_logging_manager
    if _global_logging_manager:
        _global_logging_manager.cleanup()
        _global_logging_manager = None
