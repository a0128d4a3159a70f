"""Enumerations shared across the Music School Service."""

from __future__ import annotations

from enum import Enum


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class DayOfWeek(str, Enum):
    """
    Closed set of weekday symbols stored on schedule rows.

    Every member maps to exactly one calendar weekday (``date.weekday()``
    numbering, Monday == 0). Symbols that are not members are rejected by
    ``parse`` before any storage work happens.
    """

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    def to_weekday(self) -> int:
        return _CALENDAR_WEEKDAYS[self]

    @classmethod
    def parse(cls, symbol: str | DayOfWeek) -> DayOfWeek:
        """Resolve a stored or user supplied weekday symbol.

        Accepts the canonical value, the member name and the Russian day
        names used by the legacy timetable data.

        Raises:
            ValueError: If the symbol does not name a weekday.
        """
        day = cls.lookup(symbol)
        if day is None:
            raise ValueError(f"Invalid day of week: {symbol!r}")
        return day

    @classmethod
    def lookup(cls, symbol: object) -> DayOfWeek | None:
        if isinstance(symbol, DayOfWeek):
            return symbol
        if not isinstance(symbol, str):
            return None
        key = symbol.strip().casefold()
        for member in cls:
            if key == member.value:
                return member
        return _LEGACY_ALIASES.get(key)

    @classmethod
    def from_weekday(cls, weekday: int) -> DayOfWeek:
        for member, number in _CALENDAR_WEEKDAYS.items():
            if number == weekday:
                return member
        raise ValueError(f"Weekday number out of range: {weekday}")


_CALENDAR_WEEKDAYS: dict[DayOfWeek, int] = {
    DayOfWeek.MONDAY: 0,
    DayOfWeek.TUESDAY: 1,
    DayOfWeek.WEDNESDAY: 2,
    DayOfWeek.THURSDAY: 3,
    DayOfWeek.FRIDAY: 4,
    DayOfWeek.SATURDAY: 5,
    DayOfWeek.SUNDAY: 6,
}

_LEGACY_ALIASES: dict[str, DayOfWeek] = {
    "понедельник": DayOfWeek.MONDAY,
    "вторник": DayOfWeek.TUESDAY,
    "среда": DayOfWeek.WEDNESDAY,
    "четверг": DayOfWeek.THURSDAY,
    "пятница": DayOfWeek.FRIDAY,
    "суббота": DayOfWeek.SATURDAY,
    "воскресенье": DayOfWeek.SUNDAY,
}


class ComparisonOperator(str, Enum):
    """Operators understood by every repository backend."""

    EQ = "="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    LIKE = "LIKE"
    ILIKE = "ILIKE"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"

    @property
    def is_unary(self) -> bool:
        return self in (ComparisonOperator.IS_NULL, ComparisonOperator.IS_NOT_NULL)


class MusicSchoolErrorCode(str, Enum):
    """
    Error codes raised by the manager layer.
    """

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNIQUENESS_CONFLICT = "UNIQUENESS_CONFLICT"
    SCHEDULE_CONFLICT = "SCHEDULE_CONFLICT"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    TRANSACTION_ERROR = "TRANSACTION_ERROR"
    INVALID_TEMPLATE = "INVALID_TEMPLATE"
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_FILTER = "INVALID_FILTER"
    TIMEOUT = "TIMEOUT"
