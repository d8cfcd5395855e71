# reports.py
from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Mapping, Sequence, TypeVar

from domain import AggregatedPayroll, InvalidRange, PayLine
from ingest import SkippedRow
from services import PayrollCalculator

T = TypeVar("T")


# =========================
# Filters (records or pay lines: anything with work_date / job_site_id / employee_id)
# =========================
def check_range(start: date, end: date) -> None:
    if start > end:
        raise InvalidRange(f"start {start.isoformat()} is after end {end.isoformat()}")


def filter_by_date_range(items: Iterable[T], start: date, end: date) -> List[T]:
    """Inclusive on both ends."""
    check_range(start, end)
    return [i for i in items if start <= i.work_date <= end]


def filter_by_job_site(items: Iterable[T], job_site_id: str) -> List[T]:
    return [i for i in items if i.job_site_id == job_site_id]


def filter_by_employee_type(items: Iterable[T], employee_type: str,
                            employee_types: Mapping[str, str]) -> List[T]:
    """employee_types maps employee_id -> type ("Employee", "Foreman", "PM")."""
    return [i for i in items if employee_types.get(i.employee_id) == employee_type]


# =========================
# Aggregation
# =========================
def iso_week_label(d: date) -> str:
    year, week, _ = d.isocalendar()
    return f"{year}-W{week:02d}"


def month_label(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


PERIODS: Dict[str, Callable[[date], str]] = {"week": iso_week_label, "month": month_label}


def _aggregate(pay_lines: Iterable[PayLine], key: Callable[[PayLine], tuple]) -> List[AggregatedPayroll]:
    groups: Dict[tuple, AggregatedPayroll] = {}
    days: Dict[tuple, set] = defaultdict(set)
    sites: Dict[tuple, set] = defaultdict(set)
    for line in pay_lines:
        k = key(line)
        agg = groups.get(k)
        if agg is None:
            employee_id, job_site_id, period = k
            agg = groups[k] = AggregatedPayroll(employee_id, job_site_id, period)
        agg.total_hours += line.shift_hours
        agg.regular_hours += line.regular_hours
        agg.overtime_hours += line.overtime_hours
        agg.total_regular_pay += line.regular_pay
        agg.total_overtime_pay += line.overtime_pay
        agg.total_pay += line.total_pay
        days[k].add(line.work_date)
        sites[k].add(line.job_site_id)
    out = []
    for k in sorted(groups, key=lambda k: tuple("" if v is None else v for v in k)):
        agg = groups[k]
        agg.total_days = len(days[k])
        agg.job_site_ids = tuple(sorted(sites[k]))
        out.append(agg)
    return out


def aggregate_by_employee(pay_lines: Iterable[PayLine]) -> List[AggregatedPayroll]:
    return _aggregate(pay_lines, lambda l: (l.employee_id, None, None))


def aggregate_by_employee_and_job_site(pay_lines: Iterable[PayLine]) -> List[AggregatedPayroll]:
    """Used by the master cross-site report."""
    return _aggregate(pay_lines, lambda l: (l.employee_id, l.job_site_id, None))


def aggregate_by_period(pay_lines: Iterable[PayLine], period: str = "week") -> List[AggregatedPayroll]:
    if period not in PERIODS:
        raise ValueError(f"period must be one of {sorted(PERIODS)}, got {period!r}")
    label = PERIODS[period]
    return _aggregate(pay_lines, lambda l: (l.employee_id, None, label(l.work_date)))


def top_n_by_pay(aggregates: Iterable[AggregatedPayroll], n: int) -> List[AggregatedPayroll]:
    """Highest total_pay first; ties broken by employee_id ascending."""
    if n < 0:
        raise ValueError("n must be >= 0")
    return sorted(aggregates, key=lambda a: (-a.total_pay, a.employee_id))[:n]


@dataclass
class PayrollTotals:
    total_hours: float = 0.0
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    total_regular_pay: float = 0.0
    total_overtime_pay: float = 0.0
    total_pay: float = 0.0
    employees: int = 0
    job_sites: int = 0


def summarize(pay_lines: Iterable[PayLine]) -> PayrollTotals:
    totals = PayrollTotals()
    employees, job_sites = set(), set()
    for line in pay_lines:
        totals.total_hours += line.shift_hours
        totals.regular_hours += line.regular_hours
        totals.overtime_hours += line.overtime_hours
        totals.total_regular_pay += line.regular_pay
        totals.total_overtime_pay += line.overtime_pay
        totals.total_pay += line.total_pay
        employees.add(line.employee_id)
        job_sites.add(line.job_site_id)
    totals.employees = len(employees)
    totals.job_sites = len(job_sites)
    return totals


# =========================
# Report assembly
# =========================
def week_bounds(start: date, end: date) -> tuple[date, date]:
    """Widens [start, end] to whole ISO weeks (Monday to Sunday)."""
    check_range(start, end)
    return start - timedelta(days=start.weekday()), end + timedelta(days=6 - end.weekday())


@dataclass
class Report:
    start: date
    end: date
    lines: List[PayLine] = field(default_factory=list)
    rows: List[AggregatedPayroll] = field(default_factory=list)
    totals: PayrollTotals = field(default_factory=PayrollTotals)
    skipped: List[SkippedRow] = field(default_factory=list)


@dataclass
class EmployeeReport(Report):
    employee_id: str = ""
    total_days: int = 0
    average_hours_per_day: float = 0.0
    job_site_ids: Sequence[str] = ()


@dataclass(frozen=True)
class DashboardStats:
    total_employees: int = 0
    project_managers: int = 0
    total_job_sites: int = 0
    active_job_sites: int = 0
    attendance_today: int = 0
    hours_this_week: float = 0.0


class ReportBuilder:
    """Recomputes every report on demand from the repositories; holds no state of its own."""
    def __init__(self, attendance_repo, rate_repo, employee_repo, calculator: PayrollCalculator | None = None,
                 job_site_repo=None):
        self.attendance_repo = attendance_repo
        self.rate_repo = rate_repo
        self.employee_repo = employee_repo
        self.job_site_repo = job_site_repo
        self.calculator = calculator or PayrollCalculator()

    def pay_lines(self, start: date, end: date, employee_id: str | None = None) -> tuple[List[PayLine], List[SkippedRow]]:
        # Overtime depends on the whole week, so weeks cut by the range are loaded in full.
        week_start, week_end = week_bounds(start, end)
        loaded = self.attendance_repo.load(week_start, week_end, employee_id=employee_id)
        lines = self.calculator.compute_payroll(loaded.records, self.rate_repo.rate_book())
        return filter_by_date_range(lines, start, end), loaded.skipped

    def _report(self, start: date, end: date, lines: List[PayLine], skipped, rows=None) -> Report:
        return Report(start, end, lines=lines, rows=rows or [], totals=summarize(lines), skipped=skipped)

    def payroll_report(self, start: date, end: date) -> Report:
        lines, skipped = self.pay_lines(start, end)
        lines.sort(key=lambda l: (l.work_date, l.employee_id, l.attendance_id), reverse=True)
        return self._report(start, end, lines, skipped, aggregate_by_employee(lines))

    def weekly_report(self, start: date, end: date) -> Report:
        lines, skipped = self.pay_lines(start, end)
        return self._report(start, end, lines, skipped, aggregate_by_period(lines, "week"))

    def master_report(self, start: date, end: date, job_site_id: str | None = None,
                      employee_type: str | None = None) -> Report:
        lines, skipped = self.pay_lines(start, end)
        if job_site_id:
            lines = filter_by_job_site(lines, job_site_id)
        if employee_type:
            types = {e.id: e.type for e in self.employee_repo.list_all()}
            lines = filter_by_employee_type(lines, employee_type, types)
        return self._report(start, end, lines, skipped, aggregate_by_employee_and_job_site(lines))

    def employee_report(self, employee_id: str, start: date, end: date) -> EmployeeReport:
        lines, skipped = self.pay_lines(start, end, employee_id=employee_id)
        rows = aggregate_by_employee(lines)
        agg = rows[0] if rows else AggregatedPayroll(employee_id)
        return EmployeeReport(
            start, end, lines=lines, rows=rows, totals=summarize(lines), skipped=skipped,
            employee_id=employee_id,
            total_days=agg.total_days,
            average_hours_per_day=agg.total_hours / agg.total_days if agg.total_days else 0.0,
            job_site_ids=agg.job_site_ids,
        )

    def top_payroll(self, start: date, end: date, n: int = 5) -> Report:
        lines, skipped = self.pay_lines(start, end)
        return self._report(start, end, lines, skipped, top_n_by_pay(aggregate_by_employee(lines), n))

    def dashboard_stats(self, today: date) -> DashboardStats:
        """Headcounts plus today's attendance and the hours logged so far in today's ISO week."""
        employees = self.employee_repo.list_all()
        sites = self.job_site_repo.list_all() if self.job_site_repo else []
        monday = today - timedelta(days=today.weekday())
        loaded = self.attendance_repo.load(monday, monday + timedelta(days=6))
        return DashboardStats(
            total_employees=len(employees),
            project_managers=sum(1 for e in employees if e.type == "PM"),
            total_job_sites=len(sites),
            active_job_sites=sum(1 for s in sites if s["status"] == "Active"),
            attendance_today=sum(1 for r in loaded.records if r.work_date == today),
            hours_this_week=sum(r.shift_hours for r in loaded.records),
        )
