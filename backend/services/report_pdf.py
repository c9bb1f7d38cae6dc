"""PDF rendering of utilisation summaries."""

from __future__ import annotations

import io
from datetime import datetime
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from backend.services.report_service import TREND_FIELDS, ReportSummary


_TABLE_STYLE = TableStyle(
    [
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#F3F4F6")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.HexColor("#111827")),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#FAFAFA")]),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#D1D5DB")),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
)


def _table(rows: list[list[str]]) -> Table:
    table = Table(rows, repeatRows=1)
    table.setStyle(_TABLE_STYLE)
    return table


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"


def render_utilization_report_pdf(
    summary: ReportSummary,
    title: str = "Machine Utilization Report",
    generated_at: Optional[datetime] = None,
) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=36,
        rightMargin=36,
        topMargin=36,
        bottomMargin=36,
        title=title,
    )
    styles = getSampleStyleSheet()
    stamp = (generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M")

    elements = [
        Paragraph(title, styles["Title"]),
        Paragraph(
            f"Period: {summary.date_from.isoformat()} to {summary.date_to.isoformat()} "
            f"| Granularity: {summary.granularity.value} | Generated: {stamp}",
            styles["Normal"],
        ),
        Spacer(1, 12),
        Paragraph("Overview", styles["Heading2"]),
        _table(
            [
                ["Metric", "Value"],
                ["Total requests", str(summary.total_requests)],
                ["Pending", str(summary.pending_count)],
                ["Completed", str(summary.completed_count)],
            ]
        ),
        Spacer(1, 12),
        Paragraph("Requests by status", styles["Heading2"]),
        _table(
            [["Status", "Requests"]]
            + [[status, str(count)] for status, count in summary.status_counts.items()]
        ),
        Spacer(1, 12),
        Paragraph("Machine usage", styles["Heading2"]),
    ]

    if summary.machine_usage:
        elements.append(
            _table(
                [["Machine", "Requests"]]
                + [[machine, str(count)] for machine, count in summary.machine_usage]
            )
        )
    else:
        elements.append(Paragraph("No machine usage recorded for this period.", styles["Normal"]))

    elements.extend([Spacer(1, 12), Paragraph("Utilization trend", styles["Heading2"])])
    if summary.trend:
        header = ["Period", "Entries", *(name.replace("_", " ").title() for name in TREND_FIELDS)]
        rows = [
            [entry.period_key, str(entry.count)]
            + [_format_number(entry.sums.get(name, 0.0)) for name in TREND_FIELDS]
            for entry in summary.trend
        ]
        elements.append(_table([header, *rows]))
    else:
        elements.append(Paragraph("No reservations in this period.", styles["Normal"]))

    doc.build(elements)
    return buffer.getvalue()
