"""
Service-year arithmetic.

A service year runs September through August and is named after the calendar year
in which it starts: "2024-09" and "2025-08" both belong to service year 2024.

Everything here is pure; report objects only need `month`, `hours`, `bible_studies`,
`participated` and `pioneer_status` attributes.
"""
from __future__ import annotations

import re
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

SERVICE_YEAR_START_MONTH = 9
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


def parse_month_key(key: str) -> tuple[int, int]:
    m = _MONTH_KEY_RE.match((key or "").strip())
    if not m:
        raise ValueError(f"Invalid month key {key!r}; expected YYYY-MM.")
    year, month = int(m.group(1)), int(m.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month in {key!r}; expected 01-12.")
    return year, month


def month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def is_month_key(key: str) -> bool:
    try:
        parse_month_key(key)
    except ValueError:
        return False
    return True


def service_year(key: str) -> int:
    year, month = parse_month_key(key)
    return year if month >= SERVICE_YEAR_START_MONTH else year - 1


def service_year_label(sy: int) -> str:
    return f"{sy}-{sy + 1}"


def service_year_months(sy: int) -> list[str]:
    """Ordered month keys September..August for service year `sy`."""
    months = [month_key(sy, m) for m in range(SERVICE_YEAR_START_MONTH, 13)]
    months += [month_key(sy + 1, m) for m in range(1, SERVICE_YEAR_START_MONTH)]
    return months


def shift_month(key: str, delta: int) -> str:
    year, month = parse_month_key(key)
    idx = year * 12 + (month - 1) + delta
    return month_key(idx // 12, idx % 12 + 1)


def month_range(start: str, end: str) -> list[str]:
    """Inclusive list of month keys from `start` to `end`."""
    sy, sm = parse_month_key(start)
    ey, em = parse_month_key(end)
    if (ey, em) < (sy, sm):
        raise ValueError("Start month must not be after end month.")
    out = []
    key = start
    while True:
        out.append(key)
        if key == end:
            return out
        key = shift_month(key, 1)


def current_month_key(today: date | None = None) -> str:
    today = today or date.today()
    return month_key(today.year, today.month)


def previous_month_key(today: date | None = None) -> str:
    return shift_month(current_month_key(today), -1)


def month_label(key: str) -> str:
    year, month = parse_month_key(key)
    return f"{MONTH_NAMES[month - 1]} {year}"


def round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


@dataclass
class MonthBucket:
    month: str
    hours: int = 0
    bible_studies: int = 0
    participated: bool = False
    pioneer_status: str = "none"
    reported: bool = False
    comments: str | None = None

    @property
    def label(self) -> str:
        return month_label(self.month)

    @property
    def auxiliary(self) -> bool:
        return self.pioneer_status == "auxiliary"


@dataclass
class ServiceYearRecord:
    service_year: int
    months: list[MonthBucket] = field(default_factory=list)

    @property
    def label(self) -> str:
        return service_year_label(self.service_year)

    @property
    def total_hours(self) -> int:
        return sum(b.hours for b in self.months)

    @property
    def total_bible_studies(self) -> int:
        return sum(b.bible_studies for b in self.months)

    @property
    def months_reported(self) -> int:
        return sum(1 for b in self.months if b.participated)

    @property
    def auxiliary_months(self) -> int:
        return sum(1 for b in self.months if b.pioneer_status == "auxiliary")

    @property
    def pioneer_months(self) -> int:
        return sum(1 for b in self.months if b.pioneer_status in ("regular", "special"))

    @property
    def average_hours(self) -> int:
        if not self.months_reported:
            return 0
        return round_half_up(self.total_hours / self.months_reported)


def _apply(bucket: MonthBucket, report: Any) -> None:
    # Two reports for one month only happen on legacy data; their numbers add up.
    bucket.hours += int(report.hours or 0)
    bucket.bible_studies += int(report.bible_studies or 0)
    participated = bool(report.participated) or int(report.hours or 0) > 0
    bucket.participated = bucket.participated or participated
    status = getattr(report, "pioneer_status", None) or "none"
    if status != "none":
        bucket.pioneer_status = status
    bucket.reported = True
    comments = getattr(report, "comments", None)
    if comments:
        bucket.comments = comments if not bucket.comments else f"{bucket.comments}; {comments}"


def build_service_year_record(reports: Iterable[Any], sy: int) -> ServiceYearRecord:
    """Map reports of service year `sy` onto the twelve ordered month buckets."""
    buckets = {key: MonthBucket(month=key) for key in service_year_months(sy)}
    for r in reports:
        bucket = buckets.get(r.month)
        if bucket is not None:
            _apply(bucket, r)
    return ServiceYearRecord(service_year=sy, months=list(buckets.values()))


def group_by_service_year(reports: Iterable[Any]) -> dict[int, list[Any]]:
    grouped: dict[int, list[Any]] = defaultdict(list)
    for r in reports:
        grouped[service_year(r.month)].append(r)
    return dict(grouped)


def summarize_service_years(reports: Iterable[Any]) -> list[ServiceYearRecord]:
    """One record per service year present in `reports`, newest first."""
    grouped = group_by_service_year(reports)
    return [build_service_year_record(grouped[sy], sy) for sy in sorted(grouped, reverse=True)]


# --- pioneer summary --------------------------------------------------------


@dataclass
class PioneerCategoryTotals:
    count: int = 0
    hours: int = 0
    bible_studies: int = 0


@dataclass
class PioneerMonthRow:
    month: str
    regular: PioneerCategoryTotals = field(default_factory=PioneerCategoryTotals)
    auxiliary: PioneerCategoryTotals = field(default_factory=PioneerCategoryTotals)

    @property
    def label(self) -> str:
        return month_label(self.month)


@dataclass
class PioneerSummary:
    rows: list[PioneerMonthRow]

    def _totals(self, attr: str) -> dict[str, float]:
        cats = [getattr(r, attr) for r in self.rows]
        months = len(cats) or 1
        total_count = sum(c.count for c in cats)
        return {
            "average_count": round(total_count / months, 1),
            "total_hours": sum(c.hours for c in cats),
            "total_bible_studies": sum(c.bible_studies for c in cats),
        }

    @property
    def regular_totals(self) -> dict[str, float]:
        return self._totals("regular")

    @property
    def auxiliary_totals(self) -> dict[str, float]:
        return self._totals("auxiliary")


def build_pioneer_summary(reports: Iterable[Any], months: list[str]) -> PioneerSummary:
    rows = {m: PioneerMonthRow(month=m) for m in months}
    for r in reports:
        row = rows.get(r.month)
        if row is None:
            continue
        status = r.pioneer_status or "none"
        if status in ("regular", "special"):
            cat = row.regular
        elif status == "auxiliary":
            cat = row.auxiliary
        else:
            continue
        cat.count += 1
        cat.hours += int(r.hours or 0)
        cat.bible_studies += int(r.bible_studies or 0)
    return PioneerSummary(rows=list(rows.values()))
