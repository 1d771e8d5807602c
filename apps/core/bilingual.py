"""
Bilingual (English / French) content helpers.

All programme content is stored in paired `<field>_en` / `<field>_fr`
columns. English is the fallback whenever the French value is blank.
"""
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

SUPPORTED_LOCALES = ('en', 'fr')
DEFAULT_LOCALE = 'en'

MONTH_NAMES = {
    'en': ['', 'January', 'February', 'March', 'April', 'May', 'June',
           'July', 'August', 'September', 'October', 'November', 'December'],
    'fr': ['', 'janvier', 'février', 'mars', 'avril', 'mai', 'juin',
           'juillet', 'août', 'septembre', 'octobre', 'novembre', 'décembre'],
}


@dataclass(frozen=True)
class BilingualLabel:
    en: str
    fr: str

    def get(self, locale: Optional[str] = None) -> str:
        return pick(self.en, self.fr, locale)

    def as_dict(self) -> dict:
        return {'en': self.en, 'fr': self.fr}


def normalize_locale(locale: Optional[str]) -> str:
    """Map 'FR', 'fr-CA', None, ... onto one of SUPPORTED_LOCALES."""
    if not locale:
        return DEFAULT_LOCALE
    short = str(locale).strip().lower()[:2]
    return short if short in SUPPORTED_LOCALES else DEFAULT_LOCALE


def pick(en: Optional[str], fr: Optional[str], locale: Optional[str] = None) -> str:
    if normalize_locale(locale) == 'fr' and fr:
        return fr
    return en or fr or ''


def localized_field(obj: Any, field: str, locale: Optional[str] = None) -> str:
    """Read `obj.<field>_en` / `obj.<field>_fr` for the requested locale."""
    return pick(
        getattr(obj, f'{field}_en', None),
        getattr(obj, f'{field}_fr', None),
        locale,
    )


def format_date(value: Optional[date], locale: Optional[str] = None) -> str:
    if value is None:
        return ''
    loc = normalize_locale(locale)
    month = MONTH_NAMES[loc][value.month]
    if loc == 'fr':
        return f"{value.day} {month} {value.year}"
    return f"{month} {value.day}, {value.year}"


def format_date_range(start: Optional[date], end: Optional[date], locale: Optional[str] = None) -> str:
    """
    Human readable date range, e.g. "March 3 - 7, 2025" / "3 - 7 mars 2025".
    """
    if not start and not end:
        return ''
    if not start or not end:
        return format_date(start or end, locale)

    loc = normalize_locale(locale)
    months = MONTH_NAMES[loc]
    if start.year == end.year and start.month == end.month:
        if loc == 'fr':
            return f"{start.day} - {end.day} {months[start.month]} {start.year}"
        return f"{months[start.month]} {start.day} - {end.day}, {start.year}"
    return f"{format_date(start, loc)} - {format_date(end, loc)}"
