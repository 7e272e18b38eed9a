"""Natural-language deadline parsing.

Turns phrases such as "next Friday", "in 3 days", "end of month" or "by EOD"
into a concrete deadline with a confidence rating:
- Relative phrases are matched against an ordered rule list; first match wins
- Absolute dates ("03/15/2024", "March 15") are tried next
- Deadline anchors and urgency keywords resolve to today

Every resolved deadline is pinned to the configured end-of-day hour (5pm by
default) in the parser's timezone, so "tomorrow" always means "tomorrow at the
end of the working day" for the person who typed it.
"""

from __future__ import annotations

import calendar
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from enum import Enum
from typing import Any, NamedTuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from taskparse.config import settings

logger = logging.getLogger(__name__)

# Index matches date.weekday()
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
_WEEKDAY_ALTERNATION = "|".join(WEEKDAYS)


class Confidence(str, Enum):
    """How unambiguous a resolved date or name is."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class ParsedDate:
    """A deadline resolved from free text."""

    date: datetime  # timezone-aware, at the end-of-day hour
    confidence: Confidence
    original_input: str

    @property
    def iso_date(self) -> str:
        return to_iso_date_string(self.date)

    def to_dict(self) -> dict[str, str]:
        return {"date": self.iso_date, "confidence": self.confidence.value}


class DateRule(NamedTuple):
    """A relative-date rule: full-match pattern, resolver and confidence."""

    pattern: re.Pattern[str]
    resolve: Callable[[re.Match[str], date], date]
    confidence: Confidence


def add_months(value: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _replace_year(value: date, year: int) -> date:
    # Feb 29 has no counterpart in a common year
    day = min(value.day, calendar.monthrange(year, value.month)[1])
    return value.replace(year=year, day=day)


def _resolve_weekday(match: re.Match[str], today: date) -> date:
    has_next = match.group(1) is not None
    target = WEEKDAYS.index(match.group(2).lower())
    delta = target - today.weekday()
    # A bare weekday equal to today means today; "next" pushes it a week out
    if delta < 0 or (delta == 0 and has_next):
        delta += 7
    logger.debug(
        "Weekday %r resolved from %s (%s): +%d days",
        match.group(0),
        today.isoformat(),
        WEEKDAYS[today.weekday()],
        delta,
    )
    return today + timedelta(days=delta)


def _resolve_offset(match: re.Match[str], today: date) -> date:
    amount = int(match.group(1))
    unit = match.group(2).lower()
    if unit.startswith("day"):
        return today + timedelta(days=amount)
    if unit.startswith("week"):
        return today + timedelta(weeks=amount)
    return add_months(today, amount)


def _resolve_next_period(match: re.Match[str], today: date) -> date:
    if match.group(1).lower() == "week":
        return today + timedelta(weeks=1)
    return add_months(today, 1)


def _resolve_end_of_period(match: re.Match[str], today: date) -> date:
    if match.group(2).lower() == "week":
        # Weeks start on Monday, so the week ends on Sunday
        return today + timedelta(days=6 - today.weekday())
    return today.replace(day=calendar.monthrange(today.year, today.month)[1])


def _resolve_this_weekday(match: re.Match[str], today: date) -> date:
    target = WEEKDAYS.index(match.group(1).lower())
    delta = target - today.weekday()
    if delta <= 0:
        delta += 7
    return today + timedelta(days=delta)


def _rule(
    pattern: str,
    resolve: Callable[[re.Match[str], date], date],
    confidence: Confidence = Confidence.HIGH,
) -> DateRule:
    return DateRule(re.compile(pattern, re.IGNORECASE), resolve, confidence)


# Evaluated in order against the whole (trimmed) input; first match wins.
RELATIVE_RULES: tuple[DateRule, ...] = (
    _rule(r"today", lambda match, today: today),
    _rule(r"tomorrow", lambda match, today: today + timedelta(days=1)),
    _rule(rf"(next\s+)?({_WEEKDAY_ALTERNATION})", _resolve_weekday),
    _rule(r"in\s+(\d+)\s+(days?|weeks?|months?)", _resolve_offset),
    _rule(r"next\s+(week|month)", _resolve_next_period),
    _rule(r"end\s+of\s+(the\s+)?(week|month)", _resolve_end_of_period),
    _rule(rf"this\s+({_WEEKDAY_ALTERNATION})", _resolve_this_weekday),
)

# (strptime format, format carries a year). Year-less formats use the current year.
ABSOLUTE_FORMATS: tuple[tuple[str, bool], ...] = (
    ("%m/%d/%Y", True),
    ("%m-%d-%Y", True),
    ("%Y-%m-%d", True),
    ("%b %d", False),
    ("%b %d, %Y", True),
    ("%B %d", False),
    ("%B %d, %Y", True),
    ("%d %b", False),
    ("%d %b %Y", True),
)

_YEAR_PATTERN = re.compile(r"\d{4}")
_DEADLINE_ANCHOR = re.compile(r"by\s+(midnight|noon|eod|end of day)", re.IGNORECASE)
_URGENCY_PATTERN = re.compile(r"asap|urgent|immediately|midnight|eod|end of day", re.IGNORECASE)


def _parse_absolute(text: str, today: date) -> tuple[date, Confidence] | None:
    for fmt, format_has_year in ABSOLUTE_FORMATS:
        try:
            if format_has_year:
                parsed = datetime.strptime(text, fmt).date()
            else:
                parsed = datetime.strptime(f"{text} {today.year}", f"{fmt} %Y").date()
        except ValueError:
            continue

        input_has_year = _YEAR_PATTERN.search(text) is not None
        # "March 15" typed in April means next March. Calendar days are compared,
        # so today's own date stays this year rather than rolling a full year.
        if not input_has_year and parsed < today:
            parsed = _replace_year(parsed, parsed.year + 1)
        return parsed, Confidence.HIGH if input_has_year else Confidence.MEDIUM

    return None


def to_iso_date_string(value: date | datetime) -> str:
    """Format the value's own calendar fields as YYYY-MM-DD."""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


class DateParser:
    """Resolve deadline phrases relative to "now" in a fixed timezone."""

    def __init__(
        self,
        timezone: str | tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
        end_of_day_hour: int | None = None,
    ) -> None:
        """Initialize the parser.

        Args:
            timezone: IANA timezone name, or a tzinfo such as a fixed UTC offset.
                Defaults to settings.user_timezone.
            clock: Returns the current time. Naive values are read as wall time
                in ``timezone``. Defaults to the system clock.
            end_of_day_hour: Hour every deadline is pinned to. Defaults to
                settings.end_of_day_hour.
        """
        if isinstance(timezone, tzinfo):
            self._tz: tzinfo = timezone
            self._tz_name = str(timezone)
        else:
            tz_name = timezone or settings.user_timezone
            try:
                self._tz = ZoneInfo(tz_name)
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning("Unknown timezone %r, falling back to UTC", tz_name)
                tz_name = "UTC"
                self._tz = ZoneInfo("UTC")
            self._tz_name = tz_name
        self._clock = clock
        self._end_of_day_hour = (
            settings.end_of_day_hour if end_of_day_hour is None else end_of_day_hour
        )

    @property
    def timezone(self) -> str:
        return self._tz_name

    def now(self) -> datetime:
        if self._clock is None:
            return datetime.now(self._tz)
        value = self._clock()
        if value.tzinfo is None:
            return value.replace(tzinfo=self._tz)
        return value.astimezone(self._tz)

    def today(self) -> date:
        return self.now().date()

    def parse(self, text: Any) -> ParsedDate | None:
        """Parse a deadline phrase.

        Returns None when the input is empty, not a string, or matches no
        rule. Callers decide what "no deadline understood" means; this method
        never guesses and never raises for unrecognized text.
        """
        if not isinstance(text, str):
            return None
        trimmed = text.strip()
        if not trimmed:
            return None

        today = self.today()

        for rule in RELATIVE_RULES:
            match = rule.pattern.fullmatch(trimmed)
            if match:
                return self._result(rule.resolve(match, today), rule.confidence, trimmed)

        absolute = _parse_absolute(trimmed, today)
        if absolute is not None:
            resolved, confidence = absolute
            return self._result(resolved, confidence, trimmed)

        if _DEADLINE_ANCHOR.fullmatch(trimmed):
            return self._result(today, Confidence.HIGH, trimmed)

        if _URGENCY_PATTERN.search(trimmed):
            return self._result(today, Confidence.MEDIUM, trimmed)

        return None

    def format_due_date(self, value: date | datetime) -> str:
        """Format a deadline for display.

        Examples (today is Saturday Oct 17):
            Oct 17 -> "Today", Oct 18 -> "Tomorrow", Oct 21 -> "Wednesday",
            Nov 26 -> "Nov 26"
        """
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(self._tz)
            day = value.date()
        else:
            day = value

        today = self.today()
        if day == today:
            return "Today"
        if day == today + timedelta(days=1):
            return "Tomorrow"
        if today < day < today + timedelta(days=7):
            return WEEKDAYS[day.weekday()].capitalize()
        return f"{calendar.month_abbr[day.month]} {day.day}"

    def parse_local_iso_date(self, text: str) -> datetime:
        """Parse YYYY-MM-DD as local midnight in the parser's timezone.

        Built from the split components so the calendar day never shifts,
        whatever the timezone's UTC offset.

        Raises:
            ValueError: If the string is not a valid YYYY-MM-DD date.
        """
        parts = text.strip().split("-")
        if len(parts) != 3 or not all(part.isdigit() for part in parts):
            raise ValueError(f"Invalid ISO date: {text!r}")
        year, month, day = (int(part) for part in parts)
        return datetime(year, month, day, tzinfo=self._tz)

    def _result(self, resolved: date, confidence: Confidence, original: str) -> ParsedDate:
        deadline = datetime(
            resolved.year,
            resolved.month,
            resolved.day,
            self._end_of_day_hour,
            0,
            0,
            0,
            tzinfo=self._tz,
        )
        return ParsedDate(date=deadline, confidence=confidence, original_input=original)


# Module-level singleton
_date_parser: DateParser | None = None


def get_date_parser() -> DateParser:
    """Get the singleton DateParser using the configured timezone."""
    global _date_parser
    if _date_parser is None:
        _date_parser = DateParser()
    return _date_parser


def reset_date_parser() -> None:
    """Reset the singleton (useful for testing)."""
    global _date_parser
    _date_parser = None


def _parser_for(now: datetime | None, timezone: str | None) -> DateParser:
    if now is None and timezone is None:
        return get_date_parser()
    # An aware "now" carries its own zone, including fixed offsets such as UTC
    zone: str | tzinfo | None = timezone
    if zone is None and now is not None and now.tzinfo is not None:
        zone = now.tzinfo
    clock = (lambda: now) if now is not None else None
    return DateParser(timezone=zone, clock=clock)


def parse_natural_date(
    text: Any,
    *,
    now: datetime | None = None,
    timezone: str | None = None,
) -> ParsedDate | None:
    """Parse a deadline phrase such as "next Friday" or "03/15/2024"."""
    return _parser_for(now, timezone).parse(text)


def format_due_date(
    value: date | datetime,
    *,
    now: datetime | None = None,
    timezone: str | None = None,
) -> str:
    """Format a deadline as "Today", "Tomorrow", a weekday name or "Mon D"."""
    return _parser_for(now, timezone).format_due_date(value)


def parse_local_iso_date(text: str, *, timezone: str | None = None) -> datetime:
    """Parse YYYY-MM-DD as local midnight without any UTC shift."""
    return _parser_for(None, timezone).parse_local_iso_date(text)
