import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

_MONTH_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


@dataclass(frozen=True)
class Month:
    year: int
    month: int

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        if self.month == 12:
            return date(self.year + 1, 1, 1) - date.resolution
        return date(self.year, self.month + 1, 1) - date.resolution

    def __str__(self) -> str:
        return self.key


def month_of(value: date) -> Month:
    return Month(value.year, value.month)


def parse_month(value: str) -> Month:
    match = _MONTH_RE.match((value or "").strip())
    if not match:
        raise ValueError("Month must be formatted as YYYY-MM")
    return Month(int(match.group(1)), int(match.group(2)))


def resolve_month(value: Optional[str], *, today: Optional[date] = None) -> Month:
    """Parse ``value`` or fall back to the month containing ``today``."""
    if value:
        return parse_month(value)
    return month_of(today or date.today())
