# utils.py
import io
from datetime import date, timedelta
from typing import Iterable, Mapping

import pandas as pd

from domain import AggregatedPayroll, PayLine


def money(x: float) -> str:
    return f"${x:,.2f}"


def month_range(d: date) -> tuple[date, date]:
    d1 = date(d.year, d.month, 1)
    d2 = (date(d.year + 1, 1, 1) if d.month == 12 else date(d.year, d.month + 1, 1)) - timedelta(days=1)
    return d1, d2


def iso_week_range(d: date) -> tuple[date, date]:
    monday = d - timedelta(days=d.weekday())
    return monday, monday + timedelta(days=6)


def pay_lines_to_dataframe(lines: Iterable[PayLine], names: Mapping[str, str] | None = None,
                           sites: Mapping[str, str] | None = None) -> pd.DataFrame:
    names, sites = names or {}, sites or {}
    rows = []
    for l in lines:
        rows.append({
            "Employee": names.get(l.employee_id, l.employee_id),
            "Job Site": sites.get(l.job_site_id, l.job_site_id),
            "Date": l.work_date.isoformat(),
            "Hours": round(l.shift_hours, 2),
            "Regular Hours": round(l.regular_hours, 2),
            "Overtime Hours": round(l.overtime_hours, 2),
            "Regular Rate": round(l.regular_rate, 2),
            "Overtime Rate": round(l.overtime_rate, 2),
            "Regular Pay": round(l.regular_pay, 2),
            "Overtime Pay": round(l.overtime_pay, 2),
            "Total Pay": round(l.total_pay, 2),
        })
    return pd.DataFrame(rows)


def aggregates_to_dataframe(aggregates: Iterable[AggregatedPayroll], names: Mapping[str, str] | None = None,
                            sites: Mapping[str, str] | None = None) -> pd.DataFrame:
    """Columns for job site / period only appear when the grouping used them."""
    names, sites = names or {}, sites or {}
    rows = []
    for a in aggregates:
        row = {"Employee": names.get(a.employee_id, a.employee_id)}
        if a.job_site_id is not None:
            row["Job Site"] = sites.get(a.job_site_id, a.job_site_id)
        if a.period is not None:
            row["Period"] = a.period
        row.update({
            "Total Hours": round(a.total_hours, 2),
            "Days Worked": a.total_days,
            "Regular Hours": round(a.regular_hours, 2),
            "Overtime Hours": round(a.overtime_hours, 2),
            "Regular Pay": round(a.total_regular_pay, 2),
            "Overtime Pay": round(a.total_overtime_pay, 2),
            "Total Pay": round(a.total_pay, 2),
        })
        rows.append(row)
    return pd.DataFrame(rows)


def dataframe_to_pdf(df: pd.DataFrame, title: str, summary: Iterable[str] = ()) -> bytes:
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import A4, landscape
    from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
    from reportlab.lib.enums import TA_CENTER
    from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

    buf = io.BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=landscape(A4), topMargin=24, bottomMargin=24, leftMargin=24, rightMargin=24)
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(name="TitleCentered", parent=styles["Title"], alignment=TA_CENTER)
    summary_style = ParagraphStyle(
        name="Summary", parent=styles["Normal"], alignment=TA_CENTER,
        textColor=colors.black, fontSize=10, leading=12, spaceBefore=2, spaceAfter=2
    )
    story = [Paragraph(title, title_style), Spacer(1, 8)]
    if df.empty:
        story.append(Paragraph("No data for the selected range.", styles["Normal"]))
    else:
        data = [list(df.columns)] + df.astype(str).values.tolist()
        table = Table(data, repeatRows=1, hAlign="CENTER")
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#428BCA")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("ALIGN", (0, 0), (-1, -1), "CENTER"),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#E0E0E0")),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.whitesmoke, colors.white]),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ]))
        story.append(table)
    lines = list(summary)
    if lines:
        story.append(Spacer(1, 12))
        story += [Paragraph(s, summary_style) for s in lines]
    doc.build(story)
    return buf.getvalue()
