"""Errors raised while ingesting and serving holiday data, and how they are reported.

放假日資料處理的例外體系:
- 下載 / 解析失敗會中止整次擷取 (DownloadError, ParseError)
- 單一年度 / 單一檔案失敗僅略過該單位 (PerYearWriteError, PerFileReprocessError)
- 即時警報來源失敗一律吞下並視為「目前沒有警報」 (RemoteFeedError)
"""

import functools
import json
import logging
import os
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import requests


class ErrorSeverity(Enum):
    """錯誤嚴重程度"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class ErrorCategory(Enum):
    NETWORK = "network"
    DATA = "data"
    FILE_SYSTEM = "file_system"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    ENCODING = "encoding"
    PARSING = "parsing"
    UNKNOWN = "unknown"


@dataclass
class ErrorReport:
    """One reported error, as logged and as written to errors.jsonl."""
    timestamp: datetime
    severity: ErrorSeverity
    category: ErrorCategory
    operation: str
    user_message: str
    technical_message: str
    recovery_suggestions: List[str] = field(default_factory=list)
    context_data: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'severity': self.severity.value,
            'category': self.category.value,
            'operation': self.operation,
            'user_message': self.user_message,
            'technical_message': self.technical_message,
            'recovery_suggestions': self.recovery_suggestions,
            'context_data': self.context_data,
            'stack_trace': self.stack_trace,
        }


class BaseApplicationError(Exception):
    """Base class of every error raised by this package.

    Carries what the CLI shows to the user (message, recovery suggestions)
    and what goes into the error log (severity, category, operation, context).
    """

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        operation: str = "",
        recovery_suggestions: Optional[List[str]] = None,
        context_data: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.severity = severity
        self.category = category
        self.operation = operation
        self.recovery_suggestions = recovery_suggestions or []
        self.context_data = context_data or {}
        self.cause = cause
        self.timestamp = datetime.now()

    def get_user_message(self) -> str:
        return str(self)

    def get_technical_message(self) -> str:
        message = f"{type(self).__name__}: {self}"
        if self.cause is not None:
            message += f" (Caused by: {type(self.cause).__name__}: {self.cause})"
        return message

    def to_report(self) -> ErrorReport:
        # a wrapper built in an except block was never raised; use its cause's traceback
        raised = self if self.__traceback__ is not None else self.cause
        stack_trace = None
        if raised is not None and raised.__traceback__ is not None:
            stack_trace = ''.join(traceback.format_exception(type(raised), raised, raised.__traceback__))

        return ErrorReport(
            timestamp=self.timestamp,
            severity=self.severity,
            category=self.category,
            operation=self.operation,
            user_message=self.get_user_message(),
            technical_message=self.get_technical_message(),
            recovery_suggestions=list(self.recovery_suggestions),
            context_data=dict(self.context_data),
            stack_trace=stack_trace,
        )


# 擷取流程錯誤
class DownloadError(BaseApplicationError):
    """開放資料 CSV 下載失敗 (網路、逾時或來源 URL 格式錯誤)"""

    def __init__(self, message: str, url: str = "", connect_timeout: float = 0,
                 read_timeout: float = 0, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.NETWORK,
            recovery_suggestions=[
                "請確認網路連線",
                "請確認資料來源 URL 設定 (opendata.holiday.url)",
                "稍後再重新執行 fetch"
            ],
            context_data={
                "url": url,
                "connect_timeout": connect_timeout,
                "read_timeout": read_timeout
            },
            **kwargs
        )


class ParseError(BaseApplicationError):
    """CSV 內容無法轉換為放假日資料"""

    def __init__(self, message: str, line_number: int = 0, field: str = "", **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.PARSING,
            recovery_suggestions=[
                "請確認 CSV 標題列包含 Date, name, isHoliday, holidayCategory, description",
                "請確認 Date 欄位為 8 位數字 (YYYYMMDD)",
                "請確認檔案為 UTF-8 編碼"
            ],
            context_data={"line_number": line_number, "field": field},
            **kwargs
        )


class PerYearWriteError(BaseApplicationError):
    """單一年度 JSON 寫入失敗 (僅略過該年度)"""

    def __init__(self, year: str, file_path: str = "", **kwargs):
        super().__init__(
            f"無法寫入 {year} 年度 JSON: {file_path}",
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.FILE_SYSTEM,
            recovery_suggestions=[
                "請確認輸出目錄權限",
                "請確認磁碟空間"
            ],
            context_data={"year": year, "file_path": file_path},
            **kwargs
        )


class PerFileReprocessError(BaseApplicationError):
    """重新處理既有 JSON 檔案失敗 (僅略過該檔案)"""

    def __init__(self, file_path: str, **kwargs):
        super().__init__(
            f"處理檔案失敗: {file_path}",
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.FILE_SYSTEM,
            recovery_suggestions=[
                "請確認檔案為有效的 JSON 陣列",
                "可重新執行 fetch 以重建該年度檔案"
            ],
            context_data={"file_path": file_path},
            **kwargs
        )


class RemoteFeedError(BaseApplicationError):
    """即時警報來源取得或反序列化失敗"""

    def __init__(self, message: str, url: str = "", **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.NETWORK,
            context_data={"url": url},
            **kwargs
        )


class ResourceNotFoundError(BaseApplicationError):
    """指定年度的資料不存在或無法讀取"""

    def __init__(self, message: str, year: str = "", **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.DATA,
            context_data={"year": year},
            **kwargs
        )


class ConfigurationError(BaseApplicationError):
    """設定檔或啟動設定無法使用"""

    def __init__(self, message: str, config_key: str = "", **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.CONFIGURATION,
            recovery_suggestions=[
                "請確認設定檔 (--config 或 ~/.tw-holidays/config.json) 為有效的 JSON",
                "請確認環境變數 HOLIDAY_DATA_URL, HOLIDAY_OUTPUT_DIR, REALTIME_FEED_URL"
            ],
            context_data={"config_key": config_key},
            **kwargs
        )


class ValidationError(BaseApplicationError):
    """年度、URL 或路徑等輸入值不合法"""

    def __init__(self, message: str, field: str = "", value: Any = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            context_data={"field": field, "value": value},
            **kwargs
        )


# 非本套件的例外依型別歸類; 依序比對，先符合者為準
_FOREIGN_ERROR_KINDS = (
    (requests.exceptions.RequestException, ErrorSeverity.HIGH, ErrorCategory.NETWORK),
    ((ConnectionError, TimeoutError), ErrorSeverity.HIGH, ErrorCategory.NETWORK),
    (UnicodeDecodeError, ErrorSeverity.MEDIUM, ErrorCategory.ENCODING),
    (json.JSONDecodeError, ErrorSeverity.MEDIUM, ErrorCategory.PARSING),
    (OSError, ErrorSeverity.MEDIUM, ErrorCategory.FILE_SYSTEM),
    ((KeyError, TypeError, ValueError), ErrorSeverity.MEDIUM, ErrorCategory.DATA),
)

_SEVERITY_LOG_LEVELS = {
    ErrorSeverity.CRITICAL: logging.CRITICAL,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.LOW: logging.INFO,
    ErrorSeverity.INFO: logging.INFO,
}


def as_application_error(error: Exception, operation: str = "") -> BaseApplicationError:
    """Wrap a foreign exception, keeping application errors as they are."""
    if isinstance(error, BaseApplicationError):
        return error

    for error_types, severity, category in _FOREIGN_ERROR_KINDS:
        if isinstance(error, error_types):
            break
    else:
        severity, category = ErrorSeverity.MEDIUM, ErrorCategory.UNKNOWN

    return BaseApplicationError(str(error), severity=severity, category=category,
                                operation=operation, cause=error)


class ErrorHandler:
    """Logs reported errors and appends them to a JSON Lines file.

    Nothing is kept in memory; the log file is the record. It is rotated
    to ``<name>.1`` once it grows past ``max_file_size`` bytes.
    """

    def __init__(self, log_file: Optional[str] = None, max_file_size: int = 5 * 1024 * 1024):
        self.logger = logging.getLogger(__name__)
        self.log_file = log_file
        self.max_file_size = max_file_size

    def handle_error(
        self,
        error: Union[BaseApplicationError, Exception],
        context: Optional[Dict[str, Any]] = None
    ) -> ErrorReport:
        """Report one error.

        Args:
            error: 處理對象的例外
            context: 額外的內容資訊，會合併進 context_data

        Returns:
            ErrorReport: 實際記錄的內容
        """
        report = as_application_error(error).to_report()
        if context:
            report.context_data.update(context)

        self.logger.log(
            _SEVERITY_LOG_LEVELS.get(report.severity, logging.ERROR),
            f"[{report.category.value.upper()}] {report.user_message}",
            extra={'error_context': report.to_record()}
        )

        if self.log_file:
            self._append_to_file(report)

        return report

    def _append_to_file(self, report: ErrorReport):
        path = Path(self.log_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if path.exists() and path.stat().st_size >= self.max_file_size:
                os.replace(path, path.with_name(path.name + '.1'))

            with open(path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(report.to_record(), ensure_ascii=False, default=str) + '\n')
        except OSError as e:
            self.logger.error(f"無法寫入錯誤紀錄檔 {path}: {e}")


_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """Return the process-wide error handler (errors.jsonl under ~/.tw-holidays/logs)."""
    global _global_error_handler
    if _global_error_handler is None:
        log_file = Path.home() / '.tw-holidays' / 'logs' / 'errors.jsonl'
        _global_error_handler = ErrorHandler(str(log_file))
    return _global_error_handler


def handle_error(
    error: Union[BaseApplicationError, Exception],
    context: Optional[Dict[str, Any]] = None
) -> ErrorReport:
    return get_error_handler().handle_error(error, context)


def with_error_handling(
    operation_name: str = "",
    category: ErrorCategory = ErrorCategory.UNKNOWN
):
    """Report whatever escapes the wrapped call.

    應用程式例外補上 operation 後原樣重新拋出；其他例外以 ``category``
    包裝為 BaseApplicationError 後拋出。
    """
    def decorator(func):
        operation = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except BaseApplicationError as e:
                e.operation = e.operation or operation
                handle_error(e)
                raise
            except Exception as e:
                app_error = BaseApplicationError(str(e), category=category, operation=operation, cause=e)
                handle_error(app_error)
                raise app_error from e
        return wrapper
    return decorator
