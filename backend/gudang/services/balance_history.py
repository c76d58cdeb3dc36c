# Overview: Point-in-time stock reconstruction from the ledger and the current balance.

"""
Balance reconstruction.

No historical snapshot table exists. The balance at any past instant is
derived by walking the ledger backward from the current balance:

- Sort movements newest first (instant, then ledger append position).
- Start at the current balance. For each movement record a checkpoint
  (movement instant, balance right after it), then undo the movement:
  IN is subtracted, OUT is added back.
- Whatever remains after undoing everything is the origin checkpoint at
  datetime.min (the balance at "time zero").

Looking up instant T is a floor search: the latest checkpoint whose instant
is <= T. When several checkpoints share an instant the last one wins, which
is the balance after every movement stamped with that instant.

TIEBREAK: movements with identical instants are ordered by ledger append
position; the later-appended one is the more recent.

Everything here is pure. "Today" is a parameter, never read from a clock,
so identical inputs always give identical output.
"""
from __future__ import annotations

from bisect import bisect_right
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable

from ..errors import ValidationError
from ..time_utils import add_months, end_of_day, end_of_month, start_of_day
from ..validation import TX_TYPE_IN, TX_TYPE_OUT


GRANULARITY_HOUR = "hour"
GRANULARITY_DAY = "day"
GRANULARITY_MONTH = "month"
GRANULARITIES = (GRANULARITY_HOUR, GRANULARITY_DAY, GRANULARITY_MONTH)

ORIGIN = datetime.min


@dataclass(frozen=True)
class Movement:
    """A signed change of one product's stock at an instant."""
    instant: datetime
    product_code: str
    delta: int
    sequence: int


@dataclass(frozen=True)
class Checkpoint:
    instant: datetime
    balance: int


@dataclass(frozen=True)
class BalancePoint:
    instant: datetime
    balances: dict[str, int]


def movement_from_transaction(row: dict, sequence: int) -> Movement:
    """IN adds quantity, OUT removes it."""
    quantity = int(row["quantity"])
    if row["type"] == TX_TYPE_IN:
        delta = quantity
    elif row["type"] == TX_TYPE_OUT:
        delta = -quantity
    else:
        raise ValueError(f"unknown transaction type: {row['type']!r}")
    return Movement(instant=row["timestamp"], product_code=row["product_code"], delta=delta, sequence=sequence)


class BalanceTimeline:
    """Ascending checkpoints for one product, starting at the origin."""

    def __init__(self, checkpoints: list[Checkpoint]):
        self.checkpoints = checkpoints
        self._instants = [c.instant for c in checkpoints]

    @property
    def origin_balance(self) -> int:
        return self.checkpoints[0].balance

    def balance_at(self, instant: datetime) -> int:
        index = bisect_right(self._instants, instant) - 1
        return self.checkpoints[max(index, 0)].balance


def build_timeline(current_balance: int, movements: Iterable[Movement]) -> BalanceTimeline:
    ordered = sorted(movements, key=lambda m: (m.instant, m.sequence), reverse=True)

    balance = current_balance
    points = []
    for movement in ordered:
        points.append(Checkpoint(movement.instant, balance))
        balance -= movement.delta
    points.append(Checkpoint(ORIGIN, balance))

    points.reverse()
    return BalanceTimeline(points)


def build_timelines(current_balances: dict[str, int], movements: Iterable[Movement]) -> dict[str, BalanceTimeline]:
    """One timeline per product in current_balances; other products' movements are ignored."""
    grouped: dict[str, list[Movement]] = defaultdict(list)
    for movement in movements:
        if movement.product_code in current_balances:
            grouped[movement.product_code].append(movement)
    return {
        code: build_timeline(balance, grouped.get(code, []))
        for code, balance in current_balances.items()
    }


def generate_ticks(
    granularity: str,
    *,
    day: date | None = None,
    start_hour: int = 8,
    end_hour: int = 17,
    start: date | None = None,
    end: date | None = None,
) -> list[datetime]:
    """
    Reporting grid.

    hour:  every hour from start_hour to end_hour (inclusive) of day
    day:   midnight of every day from start to end (inclusive)
    month: first of every month from start's month to end's month
    """
    if granularity == GRANULARITY_HOUR:
        if day is None:
            raise ValidationError("date is required for hourly history")
        if not (0 <= start_hour <= end_hour <= 23):
            raise ValidationError("hours must satisfy 0 <= start_hour <= end_hour <= 23")
        base = datetime(day.year, day.month, day.day)
        return [base + timedelta(hours=h) for h in range(start_hour, end_hour + 1)]

    if start is None or end is None:
        raise ValidationError("start and end are required")
    if start > end:
        raise ValidationError("start must not be after end")

    if granularity == GRANULARITY_DAY:
        first = datetime(start.year, start.month, start.day)
        days = (end - start).days
        return [first + timedelta(days=d) for d in range(days + 1)]

    if granularity == GRANULARITY_MONTH:
        current = datetime(start.year, start.month, 1)
        last = datetime(end.year, end.month, 1)
        ticks = []
        while current <= last:
            ticks.append(current)
            current = add_months(current, 1)
        return ticks

    raise ValidationError(f"granularity must be one of {', '.join(GRANULARITIES)}")


def lookup_instant(tick: datetime, granularity: str) -> datetime:
    """
    Instant whose balance is reported for tick.

    Hourly ticks are instants. Day and month ticks are periods and report
    the closing balance, i.e. the balance at the last instant of the period.
    """
    if granularity == GRANULARITY_DAY:
        return end_of_day(tick)
    if granularity == GRANULARITY_MONTH:
        return end_of_month(tick)
    return tick


def reconstruct_series(
    current_balances: dict[str, int],
    movements: Iterable[Movement],
    ticks: Iterable[datetime],
    granularity: str,
    *,
    today: date,
) -> list[BalancePoint]:
    """
    Balances of every product in current_balances at each tick.

    Ticks dated after today are dropped: a future balance is never produced.
    """
    timelines = build_timelines(current_balances, movements)

    series = []
    for tick in sorted(ticks):
        if start_of_day(tick).date() > today:
            continue
        at = lookup_instant(tick, granularity)
        series.append(BalancePoint(
            instant=tick,
            balances={code: timeline.balance_at(at) for code, timeline in timelines.items()},
        ))
    return series
