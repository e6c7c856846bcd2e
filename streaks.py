"""Streak and calendar computations for the daily consistency tracker.

Everything here is a pure function of its arguments: callers pass the full
list of completion records and an explicit ``today``. Nothing reads the clock
or the database.
"""

import calendar
import logging
from dataclasses import dataclass, replace
from datetime import date, timedelta
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

TOPICS = ("ai_knowledge", "codebasics", "trading")

TOPIC_NAMES = {
    "ai_knowledge": "AI Knowledge",
    "codebasics": "Codebasics",
    "trading": "Trading",
}


@dataclass(frozen=True)
class CompletionRecord:
    date: str
    ai_knowledge: bool = False
    codebasics: bool = False
    trading: bool = False

    @property
    def is_complete(self):
        return self.ai_knowledge and self.codebasics and self.trading

    def topics(self):
        return {t: getattr(self, t) for t in TOPICS}

    @classmethod
    def from_mapping(cls, row):
        return cls(date=row["date"], **{t: bool(row.get(t, False)) for t in TOPICS})


class DayStatus(str, Enum):
    FUTURE = "future"
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class DayCell:
    day: int
    date: str
    status: DayStatus
    record: Optional[CompletionRecord] = None


def _valid_iso(value):
    try:
        return date.fromisoformat(value).isoformat() == value
    except (TypeError, ValueError):
        return False


def normalize_records(records):
    """Drop undated records and keep the last record seen for each date."""
    by_date = {}
    for r in records:
        if not _valid_iso(r.date):
            logger.warning("Ignoring completion record with bad date %r", r.date)
            continue
        # re-insert so the surviving record keeps the position of the last write
        by_date.pop(r.date, None)
        by_date[r.date] = r
    return list(by_date.values())


def find_record(records, day):
    """Return the record for ``day`` (a date or ISO string), last write wins."""
    key = day.isoformat() if isinstance(day, date) else day
    found = None
    for r in records:
        if r.date == key:
            found = r
    return found


def is_day_complete(records, day):
    r = find_record(records, day)
    return r is not None and r.is_complete


def celebration_due(before, after):
    """Edge trigger: only the transition into "all complete" celebrates."""
    return not before and after


def month_bounds(year, month):
    days = calendar.monthrange(year, month)[1]
    return date(year, month, 1).isoformat(), date(year, month, days).isoformat()


def classify_month(records, year, month, today):
    """Classify every day of ``year``/``month`` relative to ``today``.

    Returns a dict mapping day-of-month to :class:`DayCell`, in day order.
    Dates after ``today`` are always FUTURE, even when a record exists.
    """
    first, last = month_bounds(year, month)
    in_month = {r.date: r for r in normalize_records(records) if first <= r.date <= last}
    today_iso = today.isoformat()

    cells = {}
    for d in range(1, calendar.monthrange(year, month)[1] + 1):
        ds = date(year, month, d).isoformat()
        record = in_month.get(ds)
        if ds > today_iso:
            status = DayStatus.FUTURE
        elif record is not None and record.is_complete:
            status = DayStatus.COMPLETE
        else:
            status = DayStatus.INCOMPLETE
        cells[d] = DayCell(day=d, date=ds, status=status, record=record)
    return cells


def compute_streak(records, today):
    """Count consecutive fully complete days ending at today.

    A missing record for today is skipped rather than breaking the chain, so
    the streak survives until the day is over. Any other missing day, or any
    partial day, ends the walk. At most ``len(records) + 1`` days are checked.
    """
    by_date = {r.date: r for r in normalize_records(records)}
    if not by_date:
        return 0

    streak = 0
    check = today
    for _ in range(len(by_date) + 1):
        record = by_date.get(check.isoformat())
        if record is None:
            if check == today:
                check -= timedelta(days=1)
                continue
            break
        if not record.is_complete:
            break
        streak += 1
        check -= timedelta(days=1)
    return streak


def upsert_topic(records, day, topic, value):
    """Return a new record list with ``topic`` set to ``value`` on ``day``.

    The input list is left untouched. A day without a record gets a new one
    with the other topics unchecked.
    """
    if topic not in TOPICS:
        raise ValueError(f"unknown topic: {topic!r}")
    key = day.isoformat() if isinstance(day, date) else day
    value = bool(value)

    updated = list(records)
    for i in range(len(updated) - 1, -1, -1):
        if updated[i].date == key:
            updated[i] = replace(updated[i], **{topic: value})
            return updated
    updated.append(CompletionRecord(date=key, **{topic: value}))
    return updated
