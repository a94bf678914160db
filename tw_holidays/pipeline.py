"""Holiday ingestion pipeline.

處理流程:
1. 下載開放資料 CSV 至暫存檔 (連線 / 讀取逾時分開設定)
2. 解析 CSV 為 HolidayRecord
3. 關聯節日分析 (補假追蹤)
4. 依年份輸出 JSON，單一年度失敗不影響其他年度
5. 產生年份索引檔 (years.json)
6. 清理暫存檔 (無論成功與否一律執行)

下載或解析失敗會中止整次擷取；另提供只重新分析既有 JSON 的模式。
"""

import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

import requests

from .config import Config
from .csv_parser import CsvHolidayParser
from .error_handler import (
    DownloadError, ErrorCategory, ParseError, PerFileReprocessError,
    PerYearWriteError, ValidationError, handle_error, with_error_handling
)
from .logging_config import get_logging_manager, log_performance
from .related_holidays import RelatedHolidayResolver
from .security import NetworkSecurityManager, validate_url_input
from .year_writer import YEAR_FILE_PATTERN, YearPartitionWriter, group_by_year

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    IDLE = "idle"
    DOWNLOADING = "downloading"
    PARSING = "parsing"
    RESOLVING = "resolving"
    WRITING = "writing"
    CLEANUP = "cleanup"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineResult:
    """Summary of one fetch_and_process run."""
    record_count: int = 0
    annotated_count: int = 0
    written_years: List[str] = field(default_factory=list)
    failed_years: List[str] = field(default_factory=list)
    years_index: List[str] = field(default_factory=list)


@dataclass
class ReprocessResult:
    """Summary of one process_existing_files run."""
    processed_files: List[str] = field(default_factory=list)
    failed_files: List[str] = field(default_factory=list)


class HolidayIngestionPipeline:
    """Download → parse → resolve → partition → index → cleanup."""

    CHUNK_SIZE = 8192

    def __init__(self, source_url: str, output_dir: Union[str, Path],
                 connect_timeout: float = 10, read_timeout: float = 30,
                 session: Optional[requests.Session] = None):
        """
        Args:
            source_url: 開放資料 CSV 的 URL
            output_dir: JSON 輸出目錄
            connect_timeout: 連線逾時 (秒)
            read_timeout: 讀取逾時 (秒)
            session: 預先建立的 HTTP session (未指定時自動建立)
        """
        self.source_url = source_url
        self.output_dir = Path(output_dir)
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self._session = session

        self.parser = CsvHolidayParser()
        self.resolver = RelatedHolidayResolver()
        self.writer = YearPartitionWriter(self.output_dir)

        self.state = PipelineState.IDLE
        self.logging_manager = get_logging_manager()

    @classmethod
    def from_config(cls, config: Config, session: Optional[requests.Session] = None) -> 'HolidayIngestionPipeline':
        holiday_config = config.get_holiday_config()
        download_config = config.get_download_config()
        return cls(
            source_url=holiday_config.get('url', ''),
            output_dir=holiday_config.get('output_dir', './data/holidays'),
            connect_timeout=download_config.get('connect_timeout', 10),
            read_timeout=download_config.get('read_timeout', 30),
            session=session,
        )

    @with_error_handling(operation_name="fetch_and_process", category=ErrorCategory.DATA)
    @log_performance("holiday_fetch_and_process")
    def fetch_and_process(self) -> PipelineResult:
        """Run a full ingestion.

        Raises:
            DownloadError: the CSV could not be fetched
            ParseError: the CSV could not be parsed
        """
        result = PipelineResult()
        temp_file: Optional[Path] = None
        completed = False

        logger.info(f"開始從 OpenData 抓取資料: {self.source_url}")

        try:
            self.state = PipelineState.DOWNLOADING
            temp_file = self._create_temp_file()
            self.download_to_file(temp_file)

            self.state = PipelineState.PARSING
            with self.logging_manager.monitor_operation("parse_csv"):
                all_holidays = self.parser.parse_file(temp_file)
            result.record_count = len(all_holidays)

            self.state = PipelineState.RESOLVING
            result.annotated_count = self.resolver.resolve(all_holidays)

            self.state = PipelineState.WRITING
            grouped = group_by_year(all_holidays)
            report = self.writer.write_years(grouped)
            result.written_years = report.written_years
            result.failed_years = report.failed_years
            try:
                result.years_index = self.writer.write_years_index(report.written_years)
            except OSError as e:
                handle_error(e, {"operation": "write_years_index", "output_dir": str(self.output_dir)})
            completed = True

        except OSError as e:
            # only reading the downloaded file can get here
            raise ParseError(f"無法讀取下載的 CSV: {e}", cause=e) from e
        finally:
            self.state = PipelineState.CLEANUP
            self.cleanup_temp_file(temp_file)
            self.state = PipelineState.DONE if completed else PipelineState.FAILED

        logger.info(
            f"擷取完成: {result.record_count} 筆記錄, "
            f"寫入 {len(result.written_years)} 個年度, 失敗 {len(result.failed_years)} 個年度"
        )
        return result

    def _create_temp_file(self) -> Path:
        try:
            fd, name = tempfile.mkstemp(prefix="holiday_data_", suffix=".csv")
        except OSError as e:
            raise DownloadError(f"無法建立暫存檔: {e}", url=self.source_url, cause=e) from e
        os.close(fd)
        return Path(name)

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = NetworkSecurityManager.create_secure_session()
        return self._session

    def download_to_file(self, target: Path) -> Path:
        """Stream the source CSV into ``target``.

        Raises:
            DownloadError: malformed URL, network failure, timeout or HTTP error
        """
        try:
            validated_url = validate_url_input(self.source_url)
        except ValidationError as e:
            raise DownloadError(
                f"資料來源 URL 格式錯誤: {self.source_url}",
                url=self.source_url, cause=e
            ) from e

        logger.info("下載檔案中...")
        response = None
        try:
            with self.logging_manager.monitor_operation("download_csv", {"url": validated_url}):
                response = self._get_session().get(
                    validated_url,
                    timeout=(self.connect_timeout, self.read_timeout),
                    stream=True
                )
                response.raise_for_status()

                with open(target, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)

        except requests.exceptions.RequestException as e:
            raise DownloadError(
                f"下載開放資料失敗: {e}",
                url=validated_url,
                connect_timeout=self.connect_timeout,
                read_timeout=self.read_timeout,
                cause=e
            ) from e
        except OSError as e:
            raise DownloadError(f"無法寫入暫存檔 {target}: {e}", url=validated_url, cause=e) from e
        finally:
            if response is not None:
                response.close()

        logger.info(f"檔案下載成功: {target}")
        return target

    def cleanup_temp_file(self, temp_file: Optional[Path]):
        """Delete the transient download; failures are only logged."""
        if temp_file is None:
            return
        try:
            if temp_file.exists():
                temp_file.unlink()
                logger.info(f"暫存檔已刪除: {temp_file}")
        except OSError as e:
            logger.warning(f"無法刪除暫存檔: {temp_file} ({e})")

    @log_performance("holiday_process_existing_files")
    def process_existing_files(self) -> ReprocessResult:
        """Re-run relation analysis on the year documents already on disk.

        Each file is read, resolved and written back on its own; a failing
        file is reported and skipped.
        """
        result = ReprocessResult()

        if not self.output_dir.is_dir():
            logger.warning(f"輸出目錄不存在，無法處理現有檔案: {self.output_dir}")
            return result

        logger.info(f"開始處理現有 JSON 檔案: {self.output_dir}")

        try:
            json_files = sorted(
                path for path in self.output_dir.iterdir()
                if path.is_file() and YEAR_FILE_PATTERN.fullmatch(path.name)
            )
        except OSError as e:
            handle_error(e, {"operation": "process_existing_files", "output_dir": str(self.output_dir)})
            return result

        if not json_files:
            logger.info("沒有找到需要處理的 JSON 檔案。")
            return result

        for path in json_files:
            self.state = PipelineState.RESOLVING
            try:
                holidays = self.writer.read_year_document(path)
                self.resolver.resolve(holidays)
                self.state = PipelineState.WRITING
                self.writer.write_year(path.stem, holidays)
            except (OSError, ValueError, KeyError, TypeError, PerYearWriteError) as e:
                handle_error(PerFileReprocessError(str(path), cause=e))
                result.failed_files.append(path.name)
                continue

            result.processed_files.append(path.name)
            logger.info(f"已更新檔案: {path.name}")

        self.state = PipelineState.DONE
        logger.info("所有現有檔案處理完成。")
        return result
