"""Related holiday resolution.

針對補假、補行上班、調整放假或名稱空白的項目，從同年度其他項目的
說明文字中找出提及該日期者，並將其節日名稱填入 note。
例如 10/24 補假，10/25 的說明為「因10月25日與10月24日對調」，
則 10/24 的 note 為 10/25 的節日名稱。

比對採「第一筆符合者」，依原始資料順序掃描；同時有兩筆說明提及同一日期時，
順序較前者勝出。

月份前方緊接著數字或中文數字時不視為提及，刻意排除子字串誤判:
1月5日 不會比對到「11月5日」或「十一月五日」。日期前後的其他文字則不限制。
"""

import logging
import re
from typing import List

from .models import HolidayRecord
from .numerals import numeral_variants
from .year_writer import group_by_year

logger = logging.getLogger(__name__)

MAKEUP_CATEGORY_KEYWORDS = ("補假", "補行上班", "調整放假")

# characters that may form part of a longer month numeral ("11", "十一")
_NUMERAL_CHARS = "0-9〇零一二三四五六七八九十"


def is_makeup_type(record: HolidayRecord) -> bool:
    """True for entries whose origin has to be explained by another entry."""
    category = record.holiday_category or ""
    if any(keyword in category for keyword in MAKEUP_CATEGORY_KEYWORDS):
        return True
    return not (record.name or "").strip()


def build_date_mention_pattern(month: int, day: int) -> 're.Pattern[str]':
    """Regex matching "<month>月<day>日" in any numeral rendering.

    Month and day each accept the plain numeral, the zero-padded numeral and
    the Chinese spelling, in any combination, with optional whitespace
    around 月 / 日.
    """
    month_alternatives = "|".join(re.escape(v) for v in numeral_variants(month))
    day_alternatives = "|".join(re.escape(v) for v in numeral_variants(day))
    return re.compile(
        rf"(?<![{_NUMERAL_CHARS}])(?:{month_alternatives})\s*月\s*(?:{day_alternatives})\s*日"
    )


class RelatedHolidayResolver:
    """Annotates makeup-type records with the name of the holiday they relate to."""

    def resolve(self, holidays: List[HolidayRecord]) -> int:
        """Resolve every year independently.

        Returns:
            Number of records whose note was set
        """
        annotated = 0
        for year, year_records in group_by_year(holidays).items():
            count = self.resolve_year(year_records)
            logger.debug(f"{year} 年度關聯節日: {count} 筆")
            annotated += count

        logger.info(f"關聯節日分析完成: {annotated} 筆已標註")
        return annotated

    def resolve_year(self, year_records: List[HolidayRecord]) -> int:
        """Resolve one year's records in place; never raises for malformed dates."""
        annotated = 0

        for target in year_records:
            if not is_makeup_type(target):
                continue

            date_str = target.date or ""
            if len(date_str) != 8 or not (date_str.isascii() and date_str.isdigit()):
                continue

            pattern = build_date_mention_pattern(int(date_str[4:6]), int(date_str[6:8]))

            for source in year_records:
                if source is target:
                    continue
                if not source.description or not pattern.search(source.description):
                    continue
                if source.name:
                    target.note = source.name
                    annotated += 1
                    break

        return annotated
