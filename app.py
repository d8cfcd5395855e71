# app.py
# -----------------------------------------------
# Construction payroll (Streamlit)
# -----------------------------------------------
# Requires: streamlit, sqlmodel, pandas, reportlab, python-dotenv (psycopg2-binary for Postgres)
# Every report is recomputed from attendance + rate cards through ReportBuilder.

import logging
from datetime import date, time, timedelta

import streamlit as st

from config import Settings, configure_logging
from domain import EMPLOYEE_TYPES, JOBSITE_STATUSES, PayrollError
from reports import ReportBuilder
from repository import (
    AttendanceRepository,
    EmployeeRepository,
    JobSiteRepository,
    RateRepository,
    build_engine,
    init_db,
)
from services import PayrollCalculator
from utils import aggregates_to_dataframe, dataframe_to_pdf, iso_week_range, money, month_range, pay_lines_to_dataframe

settings = Settings.from_env()
configure_logging(settings.log_level)
logger = logging.getLogger("app")

APP_TITLE = "Crew Payroll"
st.set_page_config(page_title=APP_TITLE, page_icon="🏗️", layout="wide")


@st.cache_resource
def get_services(url: str, weekly_hours: float):
    engine = build_engine(url)
    init_db(engine)
    calculator = PayrollCalculator(weekly_threshold=weekly_hours)
    attendance = AttendanceRepository(engine, calculator)
    rates = RateRepository(engine)
    employees = EmployeeRepository(engine)
    sites = JobSiteRepository(engine)
    return attendance, rates, employees, sites, ReportBuilder(attendance, rates, employees, calculator, job_site_repo=sites)


attendance_repo, rate_repo, employee_repo, site_repo, builder = get_services(
    settings.database_url, settings.weekly_overtime_hours
)

st.title(f"🏗️ {APP_TITLE}")

employees = employee_repo.list_all()
names = {e.id: e.full_name for e in employees}
job_sites = site_repo.list_all()
site_names = {s["id"]: s["name"] for s in job_sites}

PAGES = ["Dashboard", "Attendance", "Employees & Job Sites", "Rate Cards", "Payroll Report",
         "Weekly Report", "Master Report", "Employee Report", "Top Payroll"]
page = st.sidebar.radio("Page", PAGES)


# =========================
# Helpers
# =========================
def pick_range(key: str, default: tuple[date, date] | None = None) -> tuple[date, date]:
    d1, d2 = default or month_range(date.today())
    c1, c2 = st.columns(2)
    start = c1.date_input("Start date", value=d1, key=f"{key}_start")
    end = c2.date_input("End date", value=d2, key=f"{key}_end")
    return start, end


def show_report(title: str, report, df, filename: str):
    if report.skipped:
        st.warning(f"{len(report.skipped)} malformed attendance rows were excluded.")
    t = report.totals
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total Hours", f"{t.total_hours:.2f}")
    c2.metric("Regular Pay", money(t.total_regular_pay))
    c3.metric("Overtime Pay", money(t.total_overtime_pay))
    c4.metric("Total Pay", money(t.total_pay))
    if df.empty:
        st.info("No payroll data found for the selected date range.")
        return
    st.dataframe(df, use_container_width=True, hide_index=True)
    summary = [f"Total Hours: {t.total_hours:.2f}", f"Total Pay: {money(t.total_pay)}"]
    period = f"{report.start.isoformat()} to {report.end.isoformat()}"
    c1, c2 = st.columns(2)
    c1.download_button("Download CSV", df.to_csv(index=False).encode("utf-8"),
                       file_name=f"{filename}_{period.replace(' ', '_')}.csv", mime="text/csv")
    c2.download_button("Download PDF", dataframe_to_pdf(df, f"{title}: {period}", summary),
                       file_name=f"{filename}_{period.replace(' ', '_')}.pdf", mime="application/pdf")


def run_report(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except PayrollError as e:
        logger.warning("Report failed: %s", e)
        st.error(str(e))
        return None


# =========================
# Pages
# =========================
if page == "Dashboard":
    stats = builder.dashboard_stats(date.today())
    c1, c2, c3 = st.columns(3)
    c1.metric("Employees", stats.total_employees)
    c2.metric("Project Managers", stats.project_managers)
    c3.metric("Job Sites", f"{stats.active_job_sites} active / {stats.total_job_sites}")
    c1, c2 = st.columns(2)
    c1.metric("Attendance Today", stats.attendance_today)
    c2.metric("Hours This Week", f"{stats.hours_this_week:.2f}")

elif page == "Attendance":
    st.subheader("➕ Record attendance")
    if not employees or not job_sites:
        st.info("Add at least one employee and one job site first.")
    else:
        active = [s for s in job_sites if s["status"] == "Active"] or job_sites
        with st.form("attendance"):
            emp_id = st.selectbox("Employee", [e.id for e in employees], format_func=names.get)
            site_id = st.selectbox("Job site", [s["id"] for s in active], format_func=site_names.get)
            work_date = st.date_input("Date", value=date.today(), max_value=date.today())
            c1, c2, c3 = st.columns(3)
            start = c1.time_input("Start", value=time(7, 0), step=timedelta(minutes=15))
            end = c2.time_input("End", value=time(15, 30), step=timedelta(minutes=15))
            deduct = c3.number_input("Minute deduct", min_value=0, step=5, value=30)
            overnight = st.checkbox("Ends after midnight")
            if st.form_submit_button("Save", use_container_width=True):
                try:
                    attendance_repo.add(emp_id, site_id, work_date, start, end, int(deduct), overnight)
                    st.success("Attendance recorded.")
                except PayrollError as e:
                    st.error(str(e))

    st.subheader("🕒 Recent attendance")
    for row in attendance_repo.recent(limit=10):
        label = (
            f"{names.get(row['employee_id'], row['employee_id'])} · "
            f"{site_names.get(row['jobsite_id'], row['jobsite_id'])} · {row['date']} · "
            f"{row['start_time'][:5]}–{row['end_time'][:5]} · {row['shift_hours'] or 0:.2f} h"
        )
        with st.expander(label):
            with st.form(f"edit_{row['id']}"):
                c1, c2, c3 = st.columns(3)
                new_start = c1.time_input("Start", value=time.fromisoformat(row["start_time"]),
                                          step=timedelta(minutes=15), key=f"start_{row['id']}")
                new_end = c2.time_input("End", value=time.fromisoformat(row["end_time"]),
                                        step=timedelta(minutes=15), key=f"end_{row['id']}")
                new_deduct = c3.number_input("Minute deduct", min_value=0, step=5, value=int(row["minute_deduct"] or 0),
                                             key=f"deduct_{row['id']}")
                new_overnight = st.checkbox("Ends after midnight", value=bool(row["overnight"]), key=f"overnight_{row['id']}")
                c1, c2 = st.columns(2)
                if c1.form_submit_button("Update"):
                    try:
                        attendance_repo.update(row["id"], start_time=new_start, end_time=new_end,
                                               minute_deduct=int(new_deduct), overnight=new_overnight)
                        st.rerun()
                    except PayrollError as e:
                        st.error(str(e))
                if c2.form_submit_button("Delete"):
                    attendance_repo.delete(row["id"])
                    st.rerun()

elif page == "Employees & Job Sites":
    c1, c2 = st.columns(2)
    with c1.form("employee"):
        st.markdown("**New employee**")
        first = st.text_input("First name")
        last = st.text_input("Last name")
        etype = st.selectbox("Type", EMPLOYEE_TYPES)
        reg = st.number_input("Regular rate ($/h)", min_value=0.0, step=0.5)
        ot = st.number_input("Overtime rate ($/h)", min_value=0.0, step=0.5)
        if st.form_submit_button("Add employee") and first and last:
            employee_repo.add(first, last, etype, reg, ot)
            st.rerun()
    with c2.form("jobsite"):
        st.markdown("**New job site**")
        site_name = st.text_input("Name")
        status = st.selectbox("Status", JOBSITE_STATUSES, index=1)
        pms = [e.id for e in employees if e.type == "PM"]
        pm = st.selectbox("Assigned PM", [None] + pms, format_func=lambda p: "None" if p is None else names[p])
        if st.form_submit_button("Add job site") and site_name:
            site_repo.add(site_name, status, assigned_pm=pm)
            st.rerun()
    st.dataframe(
        [{"Name": e.full_name, "Type": e.type, "Regular": e.regular_rate, "Overtime": e.overtime_rate}
         for e in employees],
        use_container_width=True, hide_index=True,
    )

elif page == "Rate Cards":
    st.caption("Rates apply to attendance dates inside their validity window; "
               "the employee's current rate is used where no card applies.")
    if employees:
        with st.form("ratecard"):
            emp_id = st.selectbox("Employee", [e.id for e in employees], format_func=names.get)
            c1, c2 = st.columns(2)
            reg = c1.number_input("Regular rate ($/h)", min_value=0.0, step=0.5)
            ot = c2.number_input("Overtime rate ($/h)", min_value=0.0, step=0.5)
            valid_from = c1.date_input("Valid from", value=date.today())
            open_ended = c2.checkbox("No end date", value=True)
            valid_to = c2.date_input("Valid to", value=date.today())
            if st.form_submit_button("Add rate card"):
                try:
                    rate_repo.add_card_row({
                        "employee_id": emp_id, "regular_pay_rate": reg, "overtime_pay_rate": ot,
                        "valid_from": valid_from, "valid_to": None if open_ended else valid_to,
                    })
                    st.success("Rate card added.")
                except PayrollError as e:
                    st.error(str(e))
        st.markdown("**Current rates**")
        emp_id = st.selectbox("Employee", [e.id for e in employees], format_func=names.get, key="current_emp")
        current = employee_repo.get(emp_id)
        with st.form("current_rates"):
            c1, c2 = st.columns(2)
            reg = c1.number_input("Regular rate ($/h)", min_value=0.0, step=0.5, value=float(current.regular_rate or 0), key=f"current_reg_{emp_id}")
            ot = c2.number_input("Overtime rate ($/h)", min_value=0.0, step=0.5, value=float(current.overtime_rate or 0), key=f"current_ot_{emp_id}")
            if st.form_submit_button("Save current rates"):
                try:
                    employee_repo.update_rates_row({"employee_id": emp_id, "regular_rate": reg, "overtime_rate": ot})
                    st.success("Current rates updated.")
                except PayrollError as e:
                    st.error(str(e))
    st.dataframe(
        [{"Employee": names.get(c.employee_id, c.employee_id), "Regular": c.regular_rate,
          "Overtime": c.overtime_rate, "From": c.valid_from, "To": c.valid_to or "open"}
         for c in rate_repo.cards_for()],
        use_container_width=True, hide_index=True,
    )

elif page == "Payroll Report":
    start, end = pick_range("payroll")
    report = run_report(builder.payroll_report, start, end)
    if report:
        show_report("Payroll Report", report, pay_lines_to_dataframe(report.lines, names, site_names), "payroll_report")

elif page == "Weekly Report":
    start, end = pick_range("weekly", iso_week_range(date.today()))
    report = run_report(builder.weekly_report, start, end)
    if report:
        show_report("Weekly Report", report, aggregates_to_dataframe(report.rows, names), "weekly_report")

elif page == "Master Report":
    start, end = pick_range("master")
    c1, c2 = st.columns(2)
    site = c1.selectbox("Job site", [None] + [s["id"] for s in job_sites],
                        format_func=lambda s: "All job sites" if s is None else site_names[s])
    etype = c2.selectbox("Employee type", [None, *EMPLOYEE_TYPES], format_func=lambda t: t or "All types")
    report = run_report(builder.master_report, start, end, job_site_id=site, employee_type=etype)
    if report:
        st.caption(f"{report.totals.employees} employees across {report.totals.job_sites} job sites")
        show_report("Master Report", report, aggregates_to_dataframe(report.rows, names, site_names), "master_report")

elif page == "Employee Report":
    if employees:
        emp_id = st.selectbox("Employee", [e.id for e in employees], format_func=names.get)
        start, end = pick_range("employee")
        report = run_report(builder.employee_report, emp_id, start, end)
        if report:
            c1, c2, c3 = st.columns(3)
            c1.metric("Days Worked", report.total_days)
            c2.metric("Avg Hours / Day", f"{report.average_hours_per_day:.2f}")
            c3.metric("Job Sites", ", ".join(site_names.get(s, s) for s in report.job_site_ids) or "-")
            show_report(f"Employee Report: {names[emp_id]}", report,
                        pay_lines_to_dataframe(report.lines, names, site_names), "employee_report")

elif page == "Top Payroll":
    start, end = pick_range("top")
    n = st.number_input("Employees", min_value=1, max_value=50, value=5)
    report = run_report(builder.top_payroll, start, end, n=int(n))
    if report:
        show_report("Top Payroll", report, aggregates_to_dataframe(report.rows, names), "top_payroll")
