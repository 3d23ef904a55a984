from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any


def parse_iso_date(value: str) -> date:
    return date.fromisoformat(value)


def iso_date(d: date) -> str:
    return d.strftime("%Y-%m-%d")


def fmt_coc_date(value: str) -> str:
    # Checkout Champ wants M/D/YY, no zero padding.
    d = parse_iso_date(value)
    return f"{d.month}/{d.day}/{d.strftime('%y')}"


@dataclass(frozen=True)
class DateRange:
    start: str
    end: str

    @classmethod
    def parse(cls, start: str, end: str) -> "DateRange":
        s = parse_iso_date((start or "").strip())
        e = parse_iso_date((end or "").strip())
        if s > e:
            raise ValueError(f"start date {s.isoformat()} is after end date {e.isoformat()}")
        return cls(start=iso_date(s), end=iso_date(e))

    def as_dict(self) -> dict[str, str]:
        return {"start": self.start, "end": self.end}


def yesterday_range(today: date) -> DateRange:
    y = today - timedelta(days=1)
    return DateRange(start=iso_date(y), end=iso_date(y))


def trailing_range(today: date, days: int = 7) -> DateRange:
    """Window of `days` full days ending yesterday."""
    end = today - timedelta(days=1)
    start = today - timedelta(days=days)
    return DateRange(start=iso_date(start), end=iso_date(end))


def to_int(value: Any, default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    s = str(value).strip()
    if s == "":
        return default
    try:
        return int(float(s))
    except ValueError:
        return default


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    s = str(value).strip().replace(",", "")
    if s == "":
        return default
    try:
        return float(s)
    except ValueError:
        return default


def ratio(n: float, d: float) -> float:
    if d == 0:
        return 0.0
    return n / d


def pct(n: float, d: float) -> float:
    return ratio(n, d) * 100.0


def pct_change(current: float, baseline: float) -> float | None:
    if baseline == 0:
        return None
    return (current - baseline) / baseline * 100.0


def first_present(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None
