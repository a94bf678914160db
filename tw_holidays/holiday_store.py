"""Read access to the published year documents.

年份字串必須完全符合 4 位數字，否則在存取檔案系統前即回報找不到資料，
避免組出 "../" 之類的路徑。
"""

import json
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .config import Config
from .error_handler import ResourceNotFoundError, ValidationError
from .models import HolidayRecord
from .security import validate_year_input
from .year_writer import YearPartitionWriter

logger = logging.getLogger(__name__)


class HolidayStore:
    """Keyed, TTL-bounded cache in front of the year documents on disk."""

    def __init__(self, output_dir: Union[str, Path], cache_ttl: float = 300):
        self.output_dir = Path(output_dir)
        self.cache_ttl = cache_ttl
        self.writer = YearPartitionWriter(self.output_dir)
        self._cache: Dict[str, Tuple[float, List[HolidayRecord]]] = {}

    @classmethod
    def from_config(cls, config: Config) -> 'HolidayStore':
        return cls(
            output_dir=config.get('opendata.holiday.output_dir', './data/holidays'),
            cache_ttl=config.get('store.cache_ttl', 300),
        )

    def get_holidays_by_year(self, year: str) -> List[HolidayRecord]:
        """Return the records of one year.

        Raises:
            ResourceNotFoundError: malformed year, missing or unreadable document
        """
        try:
            validate_year_input(year)
        except ValidationError as e:
            raise ResourceNotFoundError("年份格式錯誤，僅允許 4 位數字", year=str(year), cause=e) from e

        now = time.monotonic()
        cached = self._cache.get(year)
        if cached is not None and now - cached[0] < self.cache_ttl:
            return cached[1]

        path = self.writer.year_file(year)
        if not path.is_file():
            logger.warning(f"找不到 {year} 年度的假日資料。")
            raise ResourceNotFoundError(f"找不到 {year} 年度的假日資料", year=year)

        try:
            holidays = self.writer.read_year_document(path)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"讀取 {year} 年度假日資料時發生錯誤: {e}")
            raise ResourceNotFoundError(f"無法讀取 {year} 年度的假日資料", year=year, cause=e) from e

        if self.cache_ttl > 0:
            self._cache[year] = (now, holidays)
        return holidays

    def get_years(self) -> List[str]:
        """Contents of the year index, newest first; empty when not generated yet."""
        index_file = self.writer.index_file
        if not index_file.is_file():
            return []

        try:
            with open(index_file, 'r', encoding='utf-8') as f:
                years = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"讀取年份索引失敗: {e}")
            return []

        if not isinstance(years, list):
            logger.error(f"年份索引格式錯誤: {index_file}")
            return []
        return [str(year) for year in years]

    def invalidate(self, year: Optional[str] = None):
        """Drop one cached year, or every cached year when ``year`` is None."""
        if year is None:
            self._cache.clear()
        else:
            self._cache.pop(year, None)
