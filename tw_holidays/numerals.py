"""Chinese numeral spellings for month / day values."""

from typing import List

_DIGITS = ("", "一", "二", "三", "四", "五", "六", "七", "八", "九", "十")


def to_chinese_numeral(num: int) -> str:
    """Spell 1-39 with Chinese numerals; anything else stays a plain numeral.

    >>> to_chinese_numeral(10)
    '十'
    >>> to_chinese_numeral(24)
    '二十四'
    >>> to_chinese_numeral(40)
    '40'
    """
    if num < 1 or num >= 40:
        return str(num)
    if num <= 10:
        return _DIGITS[num]

    prefix = ("十", "二十", "三十")[num // 10 - 1]
    return prefix + _DIGITS[num % 10]


def numeral_variants(num: int) -> List[str]:
    """Every accepted rendering of ``num``: plain, zero padded, Chinese spelling."""
    variants = []
    for rendering in (str(num), f"{num:02d}", to_chinese_numeral(num)):
        if rendering not in variants:
            variants.append(rendering)
    return variants
