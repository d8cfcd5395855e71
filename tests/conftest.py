import itertools
from datetime import date, time

import pytest

from domain import AttendanceRecord, EmployeeRateProfile
from repository import (
    AttendanceRepository,
    EmployeeRepository,
    JobSiteRepository,
    RateRepository,
    build_engine,
    init_db,
)
from reports import ReportBuilder

MONDAY = date(2024, 1, 1)  # ISO 2024-W01


@pytest.fixture
def make_record():
    counter = itertools.count(1)

    def _make(work_date=MONDAY, hours=8.0, employee_id="E1", job_site_id="S1", start=time(7, 0)):
        return AttendanceRecord(
            id=f"A{next(counter):03d}",
            employee_id=employee_id,
            job_site_id=job_site_id,
            work_date=work_date,
            start_time=start,
            end_time=time(23, 0),
            shift_hours=hours,
        )
    return _make


@pytest.fixture
def rate():
    return EmployeeRateProfile("E1", 20.0, 30.0)


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{(tmp_path / 'payroll.db').as_posix()}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def repos(engine):
    return {
        "attendance": AttendanceRepository(engine),
        "rates": RateRepository(engine),
        "employees": EmployeeRepository(engine),
        "sites": JobSiteRepository(engine),
    }


@pytest.fixture
def builder(repos):
    return ReportBuilder(repos["attendance"], repos["rates"], repos["employees"], job_site_repo=repos["sites"])


@pytest.fixture
def crew(repos):
    alice = repos["employees"].add("Alice", "Mason", "Foreman", regular_rate=20.0, overtime_rate=30.0)
    bob = repos["employees"].add("Bob", "Carter", "Employee", regular_rate=15.0, overtime_rate=22.5)
    north = repos["sites"].add("North Tower", "Active")
    south = repos["sites"].add("South Yard", "Active")
    return {"alice": alice, "bob": bob, "north": north, "south": south}
