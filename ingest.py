# ingest.py
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Iterable, List, Mapping

from domain import AttendanceRecord, EmployeeRateProfile, InvalidAttendance, InvalidRate, RateCard
from services import PayrollCalculator, check_rate

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]


@dataclass(frozen=True)
class SkippedRow:
    row_id: str | None
    reason: str


@dataclass
class IngestResult:
    records: List[AttendanceRecord] = field(default_factory=list)
    skipped: List[SkippedRow] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    try:
        text = str(value).strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            # timestamp columns come back as full ISO datetimes
            return datetime.fromisoformat(text).date()
    except (TypeError, ValueError):
        raise InvalidAttendance(f"invalid date: {value!r}")


def parse_flag(value: Any) -> bool:
    """Real bools, or "true"/"1"/"false"/"0" (any case); anything else is malformed."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in ("true", "1"):
        return True
    if text in ("false", "0", ""):
        return False
    raise InvalidAttendance(f"invalid overnight flag: {value!r}")


def parse_hhmm(value: Any) -> time:
    """Accepts HH:MM or HH:MM:SS (Postgres time columns)."""
    if isinstance(value, time):
        return value
    try:
        parts = str(value).strip().split(":")
        if len(parts) not in (2, 3):
            raise ValueError(value)
        hh, mm = int(parts[0]), int(parts[1])
        ss = int(float(parts[2])) if len(parts) == 3 else 0
        return time(hh, mm, ss)
    except (TypeError, ValueError):
        raise InvalidAttendance(f"invalid time: {value!r}")


def _required(row: Row, key: str) -> Any:
    value = row.get(key)
    if value in (None, ""):
        raise InvalidAttendance(f"missing {key}")
    return value


def parse_attendance_row(row: Row, calculator: PayrollCalculator | None = None) -> AttendanceRecord:
    """Validates one input-contract row. shift_hours is always recomputed from the times."""
    calc = calculator or PayrollCalculator()
    stored = row.get("shift_hours")
    if stored is not None:
        try:
            stored = float(stored)
        except (TypeError, ValueError):
            raise InvalidAttendance(f"invalid shift_hours: {stored!r}")
        if stored < 0:
            raise InvalidAttendance(f"negative shift_hours: {stored}")
    minute_deduct = row.get("minute_deduct")
    try:
        minute_deduct = int(minute_deduct or 0)
    except (TypeError, ValueError):
        raise InvalidAttendance(f"invalid minute_deduct: {minute_deduct!r}")
    start = parse_hhmm(_required(row, "start_time"))
    end = parse_hhmm(_required(row, "end_time"))
    overnight = parse_flag(row.get("overnight"))
    hours = calc.calculate_shift_hours(start, end, minute_deduct, overnight=overnight)
    return AttendanceRecord(
        id=str(_required(row, "id")),
        employee_id=str(_required(row, "employee_id")),
        job_site_id=str(row.get("jobsite_id") or _required(row, "job_site_id")),
        work_date=parse_date(_required(row, "date")),
        start_time=start,
        end_time=end,
        minute_deduct=minute_deduct,
        shift_hours=hours,
        overnight=overnight,
    )


def ingest_attendance_rows(rows: Iterable[Row], calculator: PayrollCalculator | None = None) -> IngestResult:
    """Parses a batch; malformed rows are skipped and counted instead of aborting the batch."""
    result = IngestResult()
    for row in rows:
        try:
            result.records.append(parse_attendance_row(row, calculator))
        except InvalidAttendance as e:
            row_id = row.get("id")
            result.skipped.append(SkippedRow(None if row_id is None else str(row_id), str(e)))
    if result.skipped:
        logger.warning("Skipped %d malformed attendance rows of %d",
                       result.skipped_count, result.skipped_count + len(result.records))
    return result


def _rate_value(row: Row, *keys: str) -> float | None:
    for k in keys:
        if row.get(k) is not None:
            try:
                return float(row[k])
            except (TypeError, ValueError):
                raise InvalidRate(f"{k} is not a number: {row[k]!r}")
    return None


def parse_rate_row(row: Row) -> EmployeeRateProfile:
    """Missing rates stay None; the calculator rejects them when they are used."""
    employee_id = row.get("employee_id") or row.get("id")
    if not employee_id:
        raise InvalidRate("rate row without employee_id")
    return EmployeeRateProfile(
        employee_id=str(employee_id),
        regular_rate=_rate_value(row, "regular_rate", "regular_pay_rate"),
        overtime_rate=_rate_value(row, "overtime_rate", "overtime_pay_rate"),
    )


def parse_rate_card_row(row: Row) -> RateCard:
    profile = check_rate(parse_rate_row(row))
    try:
        valid_from = parse_date(row.get("valid_from"))
        valid_to = parse_date(row["valid_to"]) if row.get("valid_to") else None
    except InvalidAttendance as e:
        raise InvalidRate(f"rate card for {profile.employee_id}: {e}")
    if valid_to is not None and valid_to < valid_from:
        raise InvalidRate(f"rate card for {profile.employee_id} ends before it starts")
    return RateCard(profile.employee_id, profile.regular_rate, profile.overtime_rate, valid_from, valid_to)
