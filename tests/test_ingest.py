from datetime import date, time

import pytest

from domain import InvalidAttendance, InvalidRate
from ingest import (
    ingest_attendance_rows,
    parse_attendance_row,
    parse_hhmm,
    parse_rate_card_row,
    parse_rate_row,
)


def row(**overrides):
    base = {
        "id": "a1",
        "employee_id": "E1",
        "jobsite_id": "S1",
        "date": "2024-01-02",
        "start_time": "07:00",
        "end_time": "15:30",
        "minute_deduct": 30,
    }
    base.update(overrides)
    return base


def test_parse_row_computes_shift_hours():
    record = parse_attendance_row(row())

    assert record.work_date == date(2024, 1, 2)
    assert record.start_time == time(7, 0)
    assert record.job_site_id == "S1"
    assert record.shift_hours == 8.0


def test_stored_shift_hours_are_recomputed():
    assert parse_attendance_row(row(shift_hours=12)).shift_hours == 8.0


def test_null_minute_deduct_means_zero():
    assert parse_attendance_row(row(minute_deduct=None)).shift_hours == 8.5


def test_postgres_time_format_is_accepted():
    assert parse_hhmm("06:45:00") == time(6, 45)


def test_overnight_flag_allows_wrap():
    record = parse_attendance_row(row(start_time="22:00", end_time="06:00", overnight=True))

    assert record.overnight
    assert record.shift_hours == 7.5


@pytest.mark.parametrize("flag", ["true", "TRUE", "1", 1])
def test_overnight_flag_accepts_text_and_int(flag):
    assert parse_attendance_row(row(start_time="22:00", end_time="06:00", overnight=flag)).shift_hours == 7.5


@pytest.mark.parametrize("flag", ["false", "False", "0", 0, None, ""])
def test_false_overnight_flag_is_off(flag):
    assert parse_attendance_row(row(overnight=flag)).overnight is False


def test_iso_timestamp_date_is_accepted():
    assert parse_attendance_row(row(date="2024-01-02T08:00:00")).work_date == date(2024, 1, 2)


def test_batch_skips_text_false_overnight_wrap():
    result = ingest_attendance_rows([row(id="n1", start_time="18:00", end_time="08:00", overnight="false")])

    assert result.records == []
    assert [s.row_id for s in result.skipped] == ["n1"]


@pytest.mark.parametrize("bad", [
    {"start_time": "15:00", "end_time": "07:00"},
    {"start_time": "7am"},
    {"date": "2024-13-01"},
    {"date": "2024-01-02-garbage"},
    {"start_time": "18:00", "end_time": "08:00", "overnight": "false"},
    {"start_time": "22:00", "end_time": "06:00", "overnight": "yes"},
    {"minute_deduct": -10},
    {"minute_deduct": "lots"},
    {"shift_hours": -1},
    {"employee_id": None},
    {"end_time": ""},
])
def test_malformed_rows_raise(bad):
    with pytest.raises(InvalidAttendance):
        parse_attendance_row(row(**bad))


def test_batch_skips_and_counts_malformed_rows(caplog):
    rows = [
        row(id="ok1"),
        row(id="bad1", start_time="18:00", end_time="08:00"),
        row(id="ok2", date="2024-01-03"),
        row(id="bad2", shift_hours=-3),
    ]

    with caplog.at_level("WARNING", logger="ingest"):
        result = ingest_attendance_rows(rows)

    assert [r.id for r in result.records] == ["ok1", "ok2"]
    assert result.skipped_count == 2
    assert [s.row_id for s in result.skipped] == ["bad1", "bad2"]
    assert "Skipped 2 malformed attendance rows of 4" in caplog.text


def test_clean_batch_has_no_skips():
    assert ingest_attendance_rows([row()]).skipped == []


def test_rate_row_accepts_both_column_names():
    assert parse_rate_row({"id": "E1", "regular_rate": 20, "overtime_rate": 30}).overtime_rate == 30.0
    assert parse_rate_row({"employee_id": "E1", "regular_pay_rate": "21.5", "overtime_pay_rate": 32}).regular_rate == 21.5


def test_rate_row_keeps_missing_rate_as_none():
    assert parse_rate_row({"id": "E1", "regular_rate": None, "overtime_rate": 30}).regular_rate is None


def test_rate_card_row():
    card = parse_rate_card_row({
        "employee_id": "E1", "regular_pay_rate": 20, "overtime_pay_rate": 30,
        "valid_from": "2024-01-01", "valid_to": None,
    })

    assert card.valid_from == date(2024, 1, 1)
    assert card.valid_to is None


@pytest.mark.parametrize("bad", [
    {"regular_pay_rate": -1},
    {"overtime_pay_rate": None},
    {"valid_to": "2023-12-31"},
    {"valid_from": "not a date"},
    {"regular_pay_rate": "inf"},
])
def test_bad_rate_card_row_raises(bad):
    data = {"employee_id": "E1", "regular_pay_rate": 20, "overtime_pay_rate": 30, "valid_from": "2024-01-01"}
    data.update(bad)
    with pytest.raises(InvalidRate):
        parse_rate_card_row(data)
