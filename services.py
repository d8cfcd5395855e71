# services.py
from __future__ import annotations
import math
from collections import defaultdict
from datetime import datetime, date, time, timedelta
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

from domain import (
    AttendanceRecord,
    Employee,
    EmployeeRateProfile,
    InvalidAttendance,
    InvalidRate,
    MixedScopeInput,
    PayLine,
    RateCard,
)

RateResolver = Callable[[AttendanceRecord], EmployeeRateProfile]


def check_rate(rate: EmployeeRateProfile | None) -> EmployeeRateProfile:
    """Raises InvalidRate unless both rates are present, finite and >= 0."""
    if rate is None:
        raise InvalidRate("no rate profile supplied")
    for name in ("regular_rate", "overtime_rate"):
        value = getattr(rate, name)
        if value is None:
            raise InvalidRate(f"{name} missing for employee {rate.employee_id}")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise InvalidRate(f"{name} is not a finite number for employee {rate.employee_id}")
        if value < 0:
            raise InvalidRate(f"{name} is negative for employee {rate.employee_id}: {value}")
    return rate


class RateBook:
    """Date-scoped rate lookup: rate cards first, current employee rates as fallback."""
    def __init__(self, cards: Iterable[RateCard] = (), current: Iterable[EmployeeRateProfile] = ()):
        self._cards: Dict[str, List[RateCard]] = defaultdict(list)
        for card in cards:
            self._cards[card.employee_id].append(card)
        for items in self._cards.values():
            items.sort(key=lambda c: c.valid_from, reverse=True)
        self._current = {p.employee_id: p for p in current}

    @classmethod
    def from_employees(cls, employees: Iterable[Employee], cards: Iterable[RateCard] = ()) -> "RateBook":
        return cls(cards, [e.current_profile() for e in employees])

    def rate_for(self, employee_id: str, on_date: date) -> EmployeeRateProfile:
        # latest valid_from wins when windows overlap
        for card in self._cards.get(employee_id, ()):
            if card.covers(on_date):
                return card.profile()
        profile = self._current.get(employee_id)
        if profile is None:
            raise InvalidRate(f"no rate for employee {employee_id} on {on_date.isoformat()}")
        return profile


class PayrollCalculator:
    """Business rules for shift hours and weekly overtime pay."""
    def __init__(self, weekly_threshold: float = 40.0):
        if weekly_threshold < 0:
            raise ValueError("weekly_threshold must be >= 0")
        self.weekly_threshold = weekly_threshold

    def calculate_shift_hours(self, start: time, end: time, minute_deduct: int = 0,
                              overnight: bool = False) -> float:
        """Returns worked hours, unrounded. Overnight shifts end on the following day."""
        if minute_deduct < 0:
            raise InvalidAttendance(f"minute_deduct must be >= 0, got {minute_deduct}")
        t0 = datetime.combine(date.min, start)
        t1 = datetime.combine(date.min, end)
        if t1 <= t0:
            if not overnight:
                raise InvalidAttendance(f"end {end:%H:%M} is not after start {start:%H:%M}")
            t1 += timedelta(days=1)
        total = (t1 - t0).total_seconds() / 3600.0 - minute_deduct / 60.0
        if total < 0:
            raise InvalidAttendance(f"minute_deduct {minute_deduct} exceeds the shift span")
        return total

    def compute_pay_lines(self, records: Sequence[AttendanceRecord],
                          rate: EmployeeRateProfile | None) -> List[PayLine]:
        """
        Splits one employee's week of shifts into regular and overtime pay.
        The first `weekly_threshold` hours, in chronological order, are regular.
        """
        check_rate(rate)
        if not records:
            return []
        employees = {r.employee_id for r in records}
        weeks = {r.iso_year_week for r in records}
        if len(employees) > 1:
            raise MixedScopeInput(f"records span {len(employees)} employees")
        if len(weeks) > 1:
            raise MixedScopeInput(f"records span {len(weeks)} ISO weeks")
        if rate.employee_id != next(iter(employees)):
            raise MixedScopeInput(f"rate belongs to {rate.employee_id}, records to {next(iter(employees))}")
        return self._split_week(records, lambda _r: rate)

    def compute_payroll(self, records: Iterable[AttendanceRecord], rates: RateBook) -> List[PayLine]:
        """Partitions any batch by employee and ISO week, resolving rates per record date."""
        groups: Dict[Tuple[str, Tuple[int, int]], List[AttendanceRecord]] = defaultdict(list)
        for r in records:
            groups[(r.employee_id, r.iso_year_week)].append(r)

        def resolve(r: AttendanceRecord) -> EmployeeRateProfile:
            return check_rate(rates.rate_for(r.employee_id, r.work_date))

        lines: List[PayLine] = []
        for key in sorted(groups):
            lines.extend(self._split_week(groups[key], resolve))
        return lines

    def _split_week(self, records: Iterable[AttendanceRecord], resolve: RateResolver) -> List[PayLine]:
        ordered = sorted(records, key=lambda r: (r.work_date, r.start_time, r.id))
        running = 0.0
        lines = []
        for r in ordered:
            h = r.shift_hours
            if h < 0:
                raise InvalidAttendance(f"attendance {r.id} has negative shift_hours")
            rate = resolve(r)
            remaining_regular = max(0.0, self.weekly_threshold - running)
            regular = min(h, remaining_regular)
            overtime = h - regular
            lines.append(PayLine(
                attendance_id=r.id,
                employee_id=r.employee_id,
                job_site_id=r.job_site_id,
                work_date=r.work_date,
                shift_hours=h,
                regular_hours=regular,
                overtime_hours=overtime,
                regular_rate=rate.regular_rate,
                overtime_rate=rate.overtime_rate,
                regular_pay=regular * rate.regular_rate,
                overtime_pay=overtime * rate.overtime_rate,
            ))
            running += h
        return lines
