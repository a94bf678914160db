"""Data models for holiday records and realtime alert entries."""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class HolidayRecord:
    """政府行政機關辦公日曆表的一筆資料

    date 為 YYYYMMDD 字串；year 一律由 date 前四碼推導。
    note 只由關聯節日分析填入 (例如補假來源節日名稱)。
    """
    date: str
    name: str
    is_holiday: bool
    holiday_category: str
    description: str
    note: Optional[str] = None

    @property
    def year(self) -> str:
        return self.date[:4]

    def to_dict(self) -> Dict[str, Any]:
        """JSON document representation, in the published field order."""
        return {
            'date': self.date,
            'year': self.year,
            'name': self.name,
            'isHoliday': self.is_holiday,
            'holidayCategory': self.holiday_category,
            'description': self.description,
            'note': self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HolidayRecord':
        """Build a record from a persisted year document entry.

        Raises:
            KeyError: if ``date`` is missing
            TypeError: if ``data`` is not a mapping or a field has the wrong type
        """
        if not isinstance(data, dict):
            raise TypeError(f"holiday entry must be an object, got {type(data).__name__}")

        date = data['date']
        if not isinstance(date, str):
            raise TypeError(f"date must be a string, got {type(date).__name__}")

        is_holiday = data.get('isHoliday', False)
        # "false" would otherwise become True
        if not isinstance(is_holiday, bool):
            raise TypeError(f"isHoliday must be a boolean, got {type(is_holiday).__name__}")

        note = data.get('note')
        if note is not None and not isinstance(note, str):
            raise TypeError(f"note must be a string or null, got {type(note).__name__}")

        return cls(
            date=date,
            name=_optional_text(data, 'name'),
            is_holiday=is_holiday,
            holiday_category=_optional_text(data, 'holidayCategory'),
            description=_optional_text(data, 'description'),
            note=note,
        )


def _optional_text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ''
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class AlertSummary:
    text: Optional[str] = None

    @classmethod
    def from_value(cls, value: Any) -> Optional['AlertSummary']:
        # the feed renders summary either as {"text": ...}, {"#text": ...} or a bare string
        if value is None:
            return None
        if isinstance(value, str):
            return cls(text=value)
        if isinstance(value, dict):
            text = value.get('text', value.get('#text'))
            return cls(text=text if isinstance(text, str) else None)
        return cls()


@dataclass(frozen=True)
class AlertEntry:
    """即時警報 (停班停課通知) 的一筆項目"""
    id: Optional[str] = None
    title: Optional[str] = None
    updated: Optional[str] = None
    summary: Optional[AlertSummary] = None

    @property
    def summary_text(self) -> Optional[str]:
        return self.summary.text if self.summary else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AlertEntry':
        # unknown fields are ignored
        return cls(
            id=data.get('id'),
            title=data.get('title'),
            updated=data.get('updated'),
            summary=AlertSummary.from_value(data.get('summary')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'updated': self.updated,
            'summary': {'text': self.summary_text} if self.summary else None,
        }
