"""
fieldsync/metrics/dates.py - Date Expander.

Field clients record completion dates as free text in one of four shapes:

    "01.03.2025"                  single day
    "01.03.2025 bis 03.03.2025"   closed range, both ends inclusive
    "ab 01.03.2025"               open end   ("from 01.03.2025")
    "bis 03.03.2025"              open start ("until 03.03.2025")

parse_date_expression() turns the text into a tagged variant exactly once;
every other consumer (chronology ordering, daily timeline) works on the
variant. The open forms expand to the single named day: the open side is not
resolved against any project boundary.

Area spread over an expression is divided evenly across its expanded days.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional, Union

from fieldsync.config import DEFAULT_CONFIG, FieldSyncConfig

logger = logging.getLogger(__name__)

_DATE_PATTERN = r"(\d{1,2})\.(\d{1,2})\.(\d{4})"


@dataclass(frozen=True)
class SingleDate:
    day: date


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date


@dataclass(frozen=True)
class OpenStart:
    """'bis DATE': work finished by `end`, start unknown."""
    end: date


@dataclass(frozen=True)
class OpenEnd:
    """'ab DATE': work started on `start`, end unknown."""
    start: date


@dataclass(frozen=True)
class Unparseable:
    raw: str


DateExpression = Union[SingleDate, DateRange, OpenStart, OpenEnd, Unparseable]


def _to_date(day: str, month: str, year: str) -> date:
    return date(int(year), int(month), int(day))


def parse_date_expression(
    raw: str,
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> DateExpression:
    """
    Classify a free-text completion date.

    Keywords are matched case-insensitively and surrounding whitespace is
    ignored. A range written end-first is normalised by swapping its bounds.
    Anything else, including impossible calendar dates such as 31.02.2025,
    is Unparseable, as is a range longer than config.max_range_days.
    """
    text = (raw or "").strip()
    if not text:
        return Unparseable(raw or "")

    range_kw = re.escape(config.range_keyword)
    open_end_kw = re.escape(config.open_end_keyword)

    try:
        m = re.fullmatch(_DATE_PATTERN, text)
        if m:
            return SingleDate(_to_date(*m.groups()))

        m = re.fullmatch(
            rf"{_DATE_PATTERN}\s+{range_kw}\s+{_DATE_PATTERN}", text, re.IGNORECASE
        )
        if m:
            start = _to_date(*m.groups()[:3])
            end = _to_date(*m.groups()[3:])
            if end < start:
                start, end = end, start
            if (end - start).days + 1 > config.max_range_days:
                logger.warning(
                    "Date range %r spans more than %d days; treated as unparseable.",
                    raw,
                    config.max_range_days,
                )
                return Unparseable(raw)
            return DateRange(start, end)

        m = re.fullmatch(rf"{open_end_kw}\s+{_DATE_PATTERN}", text, re.IGNORECASE)
        if m:
            return OpenEnd(_to_date(*m.groups()))

        m = re.fullmatch(rf"{range_kw}\s+{_DATE_PATTERN}", text, re.IGNORECASE)
        if m:
            return OpenStart(_to_date(*m.groups()))
    except ValueError:
        logger.debug("Invalid calendar date in %r.", raw)
        return Unparseable(raw)

    return Unparseable(raw)


def _as_expression(expression: Union[DateExpression, str]) -> DateExpression:
    if isinstance(expression, str):
        return parse_date_expression(expression)
    return expression


def expand(expression: Union[DateExpression, str]) -> list[date]:
    """
    Expand a date expression (or raw text) into calendar days, ascending.

    Returns:
        [day] for single dates and both open forms, every day from start to
        end inclusive for ranges, [] for unparseable input.
    """
    expr = _as_expression(expression)
    if isinstance(expr, SingleDate):
        return [expr.day]
    if isinstance(expr, DateRange):
        span = (expr.end - expr.start).days
        return [expr.start + timedelta(days=i) for i in range(span + 1)]
    if isinstance(expr, OpenStart):
        return [expr.end]
    if isinstance(expr, OpenEnd):
        return [expr.start]
    return []


def distribute_area(
    expression: Union[DateExpression, str],
    area: float,
) -> list[tuple[date, float]]:
    """Attribute area / N to each of the N expanded days."""
    days = expand(expression)
    if not days:
        return []
    share = area / len(days)
    return [(day, share) for day in days]


def parse_dates(
    texts: Iterable[str],
    config: FieldSyncConfig = DEFAULT_CONFIG,
) -> dict[str, DateExpression]:
    """Parse each distinct date text once, keyed by the text."""
    return {text: parse_date_expression(text, config) for text in set(texts)}


def last_day(expression: Union[DateExpression, str]) -> Optional[date]:
    """Latest calendar day the expression covers, None if unparseable."""
    expr = _as_expression(expression)
    if isinstance(expr, SingleDate):
        return expr.day
    if isinstance(expr, DateRange):
        return expr.end
    if isinstance(expr, OpenStart):
        return expr.end
    if isinstance(expr, OpenEnd):
        return expr.start
    return None


def sort_key(expression: Union[DateExpression, str]) -> tuple[int, date]:
    """
    Comparable calendar key: the latest day the expression covers.

    Unparseable expressions sort before every real date, so they land last in
    a newest-first ordering.
    """
    day = last_day(expression)
    if day is None:
        return (0, date.min)
    return (1, day)
