# domain.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, time


class PayrollError(ValueError):
    """Base class for payroll input errors surfaced to the caller."""


class InvalidRate(PayrollError):
    pass


class MixedScopeInput(PayrollError):
    pass


class InvalidRange(PayrollError):
    pass


class InvalidAttendance(PayrollError):
    pass


EMPLOYEE_TYPES = ("Employee", "Foreman", "PM")
JOBSITE_STATUSES = ("Planning", "Active", "On Hold", "Completed", "Cancelled")


@dataclass(frozen=True)
class AttendanceRecord:
    """A single recorded shift of one employee on one job site."""
    id: str
    employee_id: str
    job_site_id: str
    work_date: date
    start_time: time
    end_time: time
    minute_deduct: int = 0
    shift_hours: float = 0.0
    overnight: bool = False

    @property
    def iso_year_week(self) -> tuple[int, int]:
        """Returns (ISO year, ISO week number). Weekly overtime is scoped by this key."""
        iso = self.work_date.isocalendar()
        return (iso[0], iso[1])


@dataclass
class Employee:
    id: str
    first_name: str
    last_name: str
    type: str = "Employee"
    regular_rate: float | None = None
    overtime_rate: float | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def current_profile(self) -> EmployeeRateProfile:
        return EmployeeRateProfile(self.id, self.regular_rate, self.overtime_rate)


@dataclass(frozen=True)
class EmployeeRateProfile:
    employee_id: str
    regular_rate: float | None
    overtime_rate: float | None


@dataclass(frozen=True)
class RateCard:
    """Rates valid for an employee between two dates (both inclusive, open end when valid_to is None)."""
    employee_id: str
    regular_rate: float
    overtime_rate: float
    valid_from: date
    valid_to: date | None = None

    def covers(self, on_date: date) -> bool:
        if on_date < self.valid_from:
            return False
        return self.valid_to is None or on_date <= self.valid_to

    def profile(self) -> EmployeeRateProfile:
        return EmployeeRateProfile(self.employee_id, self.regular_rate, self.overtime_rate)


@dataclass(frozen=True)
class PayLine:
    attendance_id: str
    employee_id: str
    job_site_id: str
    work_date: date
    shift_hours: float
    regular_hours: float
    overtime_hours: float
    regular_rate: float
    overtime_rate: float
    regular_pay: float
    overtime_pay: float

    @property
    def total_pay(self) -> float:
        return self.regular_pay + self.overtime_pay


@dataclass
class AggregatedPayroll:
    employee_id: str
    job_site_id: str | None = None
    period: str | None = None
    total_hours: float = 0.0
    total_days: int = 0
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    total_regular_pay: float = 0.0
    total_overtime_pay: float = 0.0
    total_pay: float = 0.0
    job_site_ids: tuple[str, ...] = field(default_factory=tuple)
