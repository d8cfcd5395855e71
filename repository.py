# repository.py
from __future__ import annotations

import logging
from typing import Any, Dict, List
from datetime import date, datetime, time, timezone
from uuid import uuid4

from sqlalchemy.pool import NullPool
from sqlalchemy import Column, Date, text
from sqlmodel import SQLModel, Field, Session, create_engine, select

from domain import Employee, RateCard
from ingest import IngestResult, Row, ingest_attendance_rows, parse_rate_card_row, parse_rate_row
from services import PayrollCalculator, RateBook, check_rate

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class EmployeeDB(SQLModel, table=True):
    __tablename__ = "employees"
    id: str = Field(default_factory=_new_id, primary_key=True)
    first_name: str
    last_name: str = Field(index=True)
    type: str = "Employee"
    email: str | None = None
    mobile_number: str | None = None
    regular_rate: float | None = None
    overtime_rate: float | None = None
    created_at: datetime = Field(default_factory=_now)


class JobSiteDB(SQLModel, table=True):
    __tablename__ = "job_sites"
    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str = Field(index=True)
    address: str | None = None
    status: str = "Planning"
    start_date: date | None = None
    end_date: date | None = None
    assigned_pm: str | None = Field(default=None, foreign_key="employees.id")
    created_at: datetime = Field(default_factory=_now)


class AttendanceDB(SQLModel, table=True):
    __tablename__ = "attendance"
    id: str = Field(default_factory=_new_id, primary_key=True)
    employee_id: str = Field(foreign_key="employees.id", index=True)
    jobsite_id: str = Field(foreign_key="job_sites.id", index=True)
    # column keeps the original "date" name
    work_date: date = Field(sa_column=Column("date", Date, index=True, nullable=False))
    start_time: time
    end_time: time
    minute_deduct: int | None = 0
    overnight: bool = False
    shift_hours: float | None = None
    created_at: datetime = Field(default_factory=_now)


class PayRateDB(SQLModel, table=True):
    __tablename__ = "pay_rates"
    id: str = Field(default_factory=_new_id, primary_key=True)
    employee_id: str = Field(foreign_key="employees.id", index=True)
    regular_pay_rate: float
    overtime_pay_rate: float
    valid_from: date
    valid_to: date | None = None


def build_engine(db_url: str, echo: bool = False):
    is_sqlite = db_url.startswith("sqlite")
    kwargs = {
        "echo": echo,
        "pool_pre_ping": True,
        "connect_args": {},
    }
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        # Serverless PG (Neon/Supabase): no local pool, bounded connect time
        kwargs["poolclass"] = NullPool
        kwargs["connect_args"] = {"connect_timeout": 10}
        if "sslmode=" not in db_url:
            db_url += ("&" if "?" in db_url else "?") + "sslmode=require"
    return create_engine(db_url, **kwargs)


def init_db(engine) -> None:
    """Fails fast when a non-SQLite database is unreachable, then creates missing tables."""
    if engine.dialect.name != "sqlite":
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
        except Exception:
            logger.error("Could not connect to %s", engine.url.render_as_string(hide_password=True))
            raise
    SQLModel.metadata.create_all(engine)


def _to_employee(r: EmployeeDB) -> Employee:
    return Employee(r.id, r.first_name, r.last_name, r.type, r.regular_rate, r.overtime_rate)


class EmployeeRepository:
    def __init__(self, engine):
        self.engine = engine

    def add(self, first_name: str, last_name: str, type: str = "Employee",
            regular_rate: float | None = None, overtime_rate: float | None = None, **extra: Any) -> Employee:
        with Session(self.engine) as session:
            row = EmployeeDB(first_name=first_name, last_name=last_name, type=type,
                             regular_rate=regular_rate, overtime_rate=overtime_rate, **extra)
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info("Added employee %s (%s)", row.id, type)
            return _to_employee(row)

    def get(self, employee_id: str) -> Employee | None:
        with Session(self.engine) as session:
            row = session.get(EmployeeDB, employee_id)
            return _to_employee(row) if row else None

    def list_all(self) -> List[Employee]:
        with Session(self.engine) as session:
            rows = session.exec(select(EmployeeDB).order_by(EmployeeDB.last_name, EmployeeDB.first_name)).all()
            return [_to_employee(r) for r in rows]

    def update_rates(self, employee_id: str, regular_rate: float, overtime_rate: float) -> None:
        """Edits the employee's current rates (fallback when no rate card covers a date)."""
        with Session(self.engine) as session:
            row = session.get(EmployeeDB, employee_id)
            if row is None:
                raise KeyError(employee_id)
            row.regular_rate = regular_rate
            row.overtime_rate = overtime_rate
            session.add(row)
            session.commit()
            logger.info("Updated current rates for employee %s", employee_id)

    def update_rates_row(self, row: Row) -> None:
        """Form or import row; rejects missing, negative and non-finite rates before writing."""
        profile = check_rate(parse_rate_row(row))
        self.update_rates(profile.employee_id, profile.regular_rate, profile.overtime_rate)


class JobSiteRepository:
    def __init__(self, engine):
        self.engine = engine

    def add(self, name: str, status: str = "Planning", assigned_pm: str | None = None, **extra: Any) -> str:
        with Session(self.engine) as session:
            row = JobSiteDB(name=name, status=status, assigned_pm=assigned_pm, **extra)
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info("Added job site %s (%s)", row.id, name)
            return row.id

    def list_all(self, status: str | None = None) -> List[Dict[str, Any]]:
        with Session(self.engine) as session:
            stmt = select(JobSiteDB).order_by(JobSiteDB.name)
            if status:
                stmt = stmt.where(JobSiteDB.status == status)
            return [
                {"id": r.id, "name": r.name, "status": r.status, "assigned_pm": r.assigned_pm}
                for r in session.exec(stmt).all()
            ]


class AttendanceRepository:
    """Attendance CRUD; reads go through the ingestion boundary so malformed rows are counted, not computed."""
    def __init__(self, engine, calculator: PayrollCalculator | None = None):
        self.engine = engine
        self.calculator = calculator or PayrollCalculator()

    def add(self, employee_id: str, jobsite_id: str, work_date: date, start_time: time, end_time: time,
            minute_deduct: int = 0, overnight: bool = False) -> str:
        hours = self.calculator.calculate_shift_hours(start_time, end_time, minute_deduct, overnight=overnight)
        with Session(self.engine) as session:
            row = AttendanceDB(
                employee_id=employee_id,
                jobsite_id=jobsite_id,
                work_date=work_date,
                start_time=start_time,
                end_time=end_time,
                minute_deduct=minute_deduct,
                overnight=overnight,
                shift_hours=hours,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info("Recorded %.2f h for employee %s on %s", hours, employee_id, work_date.isoformat())
            return row.id

    def update(self, attendance_id: str, **changes: Any) -> None:
        with Session(self.engine) as session:
            row = session.get(AttendanceDB, attendance_id)
            if row is None:
                raise KeyError(attendance_id)
            for k, v in changes.items():
                setattr(row, k, v)
            row.shift_hours = self.calculator.calculate_shift_hours(
                row.start_time, row.end_time, row.minute_deduct or 0, overnight=row.overnight
            )
            session.add(row)
            session.commit()
            logger.info("Updated attendance %s", attendance_id)

    def delete(self, attendance_id: str) -> bool:
        with Session(self.engine) as session:
            row = session.get(AttendanceDB, attendance_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            logger.info("Deleted attendance %s", attendance_id)
            return True

    def rows_between(self, start: date, end: date, employee_id: str | None = None) -> List[Dict[str, Any]]:
        """Raw rows in the input-contract shape, oldest first."""
        with Session(self.engine) as session:
            stmt = (
                select(AttendanceDB)
                .where(AttendanceDB.work_date >= start, AttendanceDB.work_date <= end)
                .order_by(AttendanceDB.work_date, AttendanceDB.start_time, AttendanceDB.id)
            )
            if employee_id:
                stmt = stmt.where(AttendanceDB.employee_id == employee_id)
            return [_attendance_row(r) for r in session.exec(stmt).all()]

    def load(self, start: date, end: date, employee_id: str | None = None) -> IngestResult:
        return ingest_attendance_rows(self.rows_between(start, end, employee_id), self.calculator)

    def recent(self, limit: int = 5) -> List[Dict[str, Any]]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(AttendanceDB).order_by(AttendanceDB.work_date.desc(), AttendanceDB.created_at.desc()).limit(limit)
            ).all()
            return [_attendance_row(r) for r in rows]


def _attendance_row(r: AttendanceDB) -> Dict[str, Any]:
    return {
        "id": r.id,
        "employee_id": r.employee_id,
        "jobsite_id": r.jobsite_id,
        "date": r.work_date.isoformat(),
        "start_time": r.start_time.strftime("%H:%M:%S"),
        "end_time": r.end_time.strftime("%H:%M:%S"),
        "minute_deduct": r.minute_deduct,
        "overnight": r.overnight,
        "shift_hours": r.shift_hours,
    }


class RateRepository:
    def __init__(self, engine):
        self.engine = engine

    def add_card(self, card: RateCard) -> str:
        with Session(self.engine) as session:
            row = PayRateDB(
                employee_id=card.employee_id,
                regular_pay_rate=card.regular_rate,
                overtime_pay_rate=card.overtime_rate,
                valid_from=card.valid_from,
                valid_to=card.valid_to,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info("Added rate card %s for employee %s from %s", row.id, card.employee_id,
                        card.valid_from.isoformat())
            return row.id

    def add_card_row(self, row: Row) -> str:
        return self.add_card(parse_rate_card_row(row))

    def cards_for(self, employee_id: str | None = None) -> List[RateCard]:
        with Session(self.engine) as session:
            stmt = select(PayRateDB).order_by(PayRateDB.employee_id, PayRateDB.valid_from)
            if employee_id:
                stmt = stmt.where(PayRateDB.employee_id == employee_id)
            return [
                RateCard(r.employee_id, r.regular_pay_rate, r.overtime_pay_rate, r.valid_from, r.valid_to)
                for r in session.exec(stmt).all()
            ]

    def rate_book(self) -> RateBook:
        """Rate cards plus each employee's current rates as the fallback."""
        with Session(self.engine) as session:
            employees = [_to_employee(r) for r in session.exec(select(EmployeeDB)).all()]
        return RateBook.from_employees(employees, self.cards_for())


__all__ = [
    "EmployeeDB", "JobSiteDB", "AttendanceDB", "PayRateDB",
    "EmployeeRepository", "JobSiteRepository", "AttendanceRepository", "RateRepository",
    "build_engine", "init_db",
]
