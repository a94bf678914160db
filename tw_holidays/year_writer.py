"""Year-partitioned JSON persistence.

- 依年份分組，每年輸出一個 <output_dir>/<YYYY>.json
- 年份索引 years.json: 本次寫入年份與目錄中既有 DDDD.json 的聯集，由新到舊
- 輸出一律為 LF 換行並以單一 LF 結尾
"""

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from .error_handler import PerYearWriteError, handle_error
from .models import HolidayRecord

logger = logging.getLogger(__name__)

YEARS_INDEX_FILENAME = "years.json"
YEAR_FILE_PATTERN = re.compile(r'[0-9]{4}\.json')


def group_by_year(records: Iterable[HolidayRecord]) -> Dict[str, List[HolidayRecord]]:
    """Stable grouping: years in first-seen order, records in original order."""
    grouped: Dict[str, List[HolidayRecord]] = {}
    for record in records:
        grouped.setdefault(record.year, []).append(record)
    return grouped


def to_json_lf(data: Any) -> str:
    """Pretty-print ``data`` with LF line endings and exactly one trailing LF."""
    text = json.dumps(data, ensure_ascii=False, indent=2)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    if not text.endswith("\n"):
        text += "\n"
    return text


@dataclass
class WriteReport:
    """Outcome of writing a batch of year documents."""
    written_years: List[str] = field(default_factory=list)
    failed_years: List[str] = field(default_factory=list)


class YearPartitionWriter:
    """Writes per-year documents and the year index under one output directory."""

    def __init__(self, output_dir: Union[str, Path]):
        self.output_dir = Path(output_dir)

    def year_file(self, year: str) -> Path:
        return self.output_dir / f"{year}.json"

    @property
    def index_file(self) -> Path:
        return self.output_dir / YEARS_INDEX_FILENAME

    def write_years(self, grouped: Dict[str, List[HolidayRecord]]) -> WriteReport:
        """Write every year; a failing year is reported and skipped."""
        report = WriteReport()

        for year, holidays_of_year in grouped.items():
            try:
                path = self.write_year(year, holidays_of_year)
            except PerYearWriteError as e:
                handle_error(e, {"operation": "write_years"})
                report.failed_years.append(year)
                continue

            report.written_years.append(year)
            logger.info(f"已產生 {year} 年度 JSON: {path.resolve()}")

        return report

    def write_year(self, year: str, holidays_of_year: List[HolidayRecord]) -> Path:
        """Write one year document.

        Raises:
            PerYearWriteError: the document could not be written
        """
        path = self.year_file(year)
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            self._write_json_lf(path, [holiday.to_dict() for holiday in holidays_of_year])
        except OSError as e:
            raise PerYearWriteError(year, str(path), cause=e) from e
        return path

    def list_existing_years(self) -> List[str]:
        """Years that already have a DDDD.json document on disk."""
        if not self.output_dir.is_dir():
            return []

        return [
            path.name[:4]
            for path in self.output_dir.iterdir()
            if path.is_file() and YEAR_FILE_PATTERN.fullmatch(path.name)
        ]

    def write_years_index(self, current_years: Iterable[str]) -> List[str]:
        """Regenerate years.json from this run's years plus those already on disk.

        Returns:
            The index as written, newest year first
        """
        all_years = set(current_years)
        all_years.update(self.list_existing_years())
        sorted_years = sorted(all_years, reverse=True)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._write_json_lf(self.index_file, sorted_years)
        logger.info(f"已產生年份索引檔 (共 {len(sorted_years)} 個年份): {self.index_file.resolve()}")
        return sorted_years

    def read_year_document(self, path: Union[str, Path]) -> List[HolidayRecord]:
        """Load a per-year document back into records.

        Raises:
            OSError: unreadable file
            ValueError: invalid JSON or not a JSON array
            KeyError / TypeError: malformed entries
        """
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        if not isinstance(data, list):
            raise ValueError(f"{path} 不是 JSON 陣列")

        return [HolidayRecord.from_dict(entry) for entry in data]

    def _write_json_lf(self, path: Path, data: Any):
        """Stage into a sibling temp file, then atomically replace ``path``."""
        content = to_json_lf(data).encode('utf-8')

        fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(content)
            os.chmod(temp_name, 0o644)
            os.replace(temp_name, path)
        except OSError:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise
