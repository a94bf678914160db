"""CSV parsing for the government office calendar feed.

- UTF-8 (BOM 可有可無)
- 標題列名稱不分大小寫，所有欄位去除前後空白
- year 一律由 Date 前四碼推導，不讀取 CSV 的 year 欄位
"""

import csv
import io
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Union

from .error_handler import ParseError
from .models import HolidayRecord

logger = logging.getLogger(__name__)

# 來源資料以「是」表示放假
YES_STRING = "是"

REQUIRED_COLUMNS = ('Date', 'name', 'isHoliday', 'holidayCategory', 'description')

DATE_PATTERN = re.compile(r'[0-9]{8}')


class CsvHolidayParser:
    """Turns the raw CSV feed into HolidayRecord objects in file order."""

    def parse(self, raw_data: bytes) -> List[HolidayRecord]:
        """Parse raw CSV bytes.

        Args:
            raw_data: CSV bytes as downloaded

        Returns:
            Records in file order

        Raises:
            ParseError: undecodable input, a row missing a required column,
                or a Date value that is not 8 ASCII digits
        """
        try:
            # utf-8-sig strips a leading BOM when present
            content = raw_data.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise ParseError(f"CSV 不是有效的 UTF-8: {e}", cause=e)

        reader = csv.reader(io.StringIO(content, newline=''))

        try:
            header = next(reader)
        except StopIteration:
            logger.warning("CSV 內容為空")
            return []
        except csv.Error as e:
            raise ParseError(f"CSV 標題列格式錯誤: {e}", line_number=1, cause=e)

        column_index = self._build_column_index(header)

        holidays = []
        try:
            for row in reader:
                if not row:
                    continue
                holidays.append(self._map_to_holiday(row, column_index, reader.line_num))
        except csv.Error as e:
            raise ParseError(f"CSV 第 {reader.line_num} 行格式錯誤: {e}",
                             line_number=reader.line_num, cause=e)

        logger.info(f"成功解析 {len(holidays)} 筆記錄")
        return holidays

    def parse_file(self, csv_file: Union[str, Path]) -> List[HolidayRecord]:
        """Parse a CSV file from disk."""
        with open(csv_file, 'rb') as f:
            raw_data = f.read()
        return self.parse(raw_data)

    @staticmethod
    def _build_column_index(header: List[str]) -> Dict[str, int]:
        """Lower-cased, trimmed header name -> column position (first wins)."""
        column_index: Dict[str, int] = {}
        for position, column in enumerate(header):
            column_index.setdefault(column.strip().lower(), position)
        return column_index

    @staticmethod
    def _get_field(row: List[str], column_index: Dict[str, int], column: str,
                   line_number: int) -> str:
        position: Optional[int] = column_index.get(column.lower())
        if position is None:
            raise ParseError(f"CSV 缺少必要欄位: {column}",
                             line_number=line_number, field=column)
        if position >= len(row):
            raise ParseError(f"CSV 第 {line_number} 行缺少欄位: {column}",
                             line_number=line_number, field=column)
        return row[position].strip()

    def _map_to_holiday(self, row: List[str], column_index: Dict[str, int],
                        line_number: int) -> HolidayRecord:
        fields = {
            column: self._get_field(row, column_index, column, line_number)
            for column in REQUIRED_COLUMNS
        }

        date_str = fields['Date']
        if not DATE_PATTERN.fullmatch(date_str):
            raise ParseError(f"CSV 第 {line_number} 行日期格式錯誤 (需為 YYYYMMDD): {date_str!r}",
                             line_number=line_number, field='Date')

        return HolidayRecord(
            date=date_str,
            name=fields['name'],
            is_holiday=fields['isHoliday'] == YES_STRING,
            holiday_category=fields['holidayCategory'],
            description=fields['description'],
        )
