"""Reporting utilities.

Formats analytics into human-readable text and JSON-serializable dicts, and
exports report rows as CSV, XLSX, PDF or JSON snapshots.
"""

from __future__ import annotations

import csv
import datetime as dt
import io
import json
from pathlib import Path
from typing import IO, Dict, Iterable, List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.workbook.child import INVALID_TITLE_REGEX
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from . import analytics as an
from .data_loader import Transaction

REPORT_COLUMNS: Dict[str, List[str]] = {
    "overview": ["date", "description", "amount", "category", "type"],
    "income-expense": ["date", "description", "amount", "category", "type"],
    "net-worth": ["name", "value", "type", "category", "date"],
    "investments": ["name", "symbol", "shares", "price", "value", "date"],
    "budget": ["name", "model", "category", "allocated", "spent", "remaining"],
    "subscriptions": ["name", "provider", "category", "billing_cycle", "amount", "monthly_cost"],
}

EXPORT_FORMATS: Dict[str, str] = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pdf": "application/pdf",
    "json": "application/json",
}

_XLSX_SHEET_LIMIT = 31


def build_summary(txns: Iterable[Transaction], budgets: Optional[Sequence[Dict]] = None) -> Dict:
    txns = list(txns)
    summary = {
        "totals": an.summarize_income_expense(txns),
        "category_spend": an.spending_by_category(txns),
        "monthly": an.monthly_totals(txns),
        "transaction_count": len(txns),
    }
    summary["budget_usage"] = an.budget_usage(txns, budgets) if budgets else []
    return summary


def format_text_report(summary: Dict) -> str:
    lines: List[str] = []
    t = summary["totals"]
    lines.append("=== Personal Finance Summary ===")
    lines.append(f"Income:  ${t['income']:.2f}")
    lines.append(f"Expense: ${t['expense']:.2f}")
    lines.append(f"Net:     ${t['net']:.2f}")
    lines.append("")

    lines.append("-- Spend by Category --")
    for cat, amt in summary["category_spend"].items():
        lines.append(f"{cat:15} ${amt:.2f}")
    lines.append("")

    lines.append("-- Monthly Totals --")
    for m, vals in summary["monthly"].items():
        lines.append(f"{m} | Inc ${vals['income']:.2f}  Exp ${vals['expense']:.2f}  Net ${vals['net']:.2f}")

    usage = summary.get("budget_usage")
    if usage:
        lines.append("")
        lines.append("-- Budget Usage --")
        for row in usage:
            lines.append(
                f"{row['name'][:15]:15} Limit ${row['allocated']:.2f}  Spent ${row['spent']:.2f}  "
                f"Remaining ${row['remaining']:.2f}"
            )
    return "\n".join(lines)


def format_recommendation_report(recommendation: Dict) -> str:
    lines = [
        f"=== {recommendation['model_type']} budget recommendation ===",
        f"Total budget:   ${recommendation['total_budget']:.2f}",
        f"Savings target: ${recommendation['savings_target']:.2f}",
        f"Risk level:     {recommendation['risk_level']}",
        "",
        "-- Categories --",
    ]
    for cat in recommendation["categories"]:
        lines.append(
            f"{cat['name'][:20]:20} ${cat['recommended_amount']:>10.2f}  "
            f"(confidence {cat['confidence_score']:.1f}) {cat['reasoning']}"
        )
    if recommendation["adjustments"]:
        lines.append("")
        lines.append("-- Adjustments --")
        lines.extend(f"* {a}" for a in recommendation["adjustments"])
    return "\n".join(lines)


def save_json(summary: Dict, path: str | Path) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2, default=str)


def _ensure_text_writer(target: str | Path | IO[str]):
    if hasattr(target, "write"):
        return target, None
    path = Path(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = path.open("w", newline="", encoding="utf-8")
    return handle, handle


def export_summary_csv(summary: Dict, path: str | Path | IO[str]) -> None:
    def fmt_amount(value) -> str:
        if value is None:
            return ""
        return f"{float(value):.2f}"

    rows: List[List[str]] = [["Section", "Item", "Metric", "Value"]]

    totals = summary.get("totals") or {}
    for key, label in (("income", "Income"), ("expense", "Expense"), ("net", "Net")):
        if key in totals:
            rows.append(["Totals", "", label, fmt_amount(totals.get(key))])

    for cat, amt in (summary.get("category_spend") or {}).items():
        rows.append(["Category Spend", cat or "Uncategorized", "Amount", fmt_amount(amt)])

    for month, vals in (summary.get("monthly") or {}).items():
        for key, label in (("income", "Income"), ("expense", "Expense"), ("net", "Net")):
            if key in vals:
                rows.append(["Monthly Totals", month, label, fmt_amount(vals.get(key))])

    for usage in summary.get("budget_usage") or []:
        for key, label in (("allocated", "Allocated"), ("spent", "Spent"), ("remaining", "Remaining")):
            rows.append(["Budget Usage", usage.get("name") or "", label, fmt_amount(usage.get(key))])

    txn_count = summary.get("transaction_count")
    if txn_count is not None:
        rows.append(["Metadata", "Transaction Count", "", str(txn_count)])

    writer_target, to_close = _ensure_text_writer(path)
    try:
        writer = csv.writer(writer_target, lineterminator="\n")
        writer.writerows(rows)
    finally:
        if to_close is not None:
            to_close.close()


def _format_date(value) -> str:
    if isinstance(value, (dt.date, dt.datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value or "")


def prepare_report_rows(report_type: str, records: Iterable[Dict]) -> List[Dict]:
    """Project raw records onto the column set of ``report_type``."""
    if report_type not in REPORT_COLUMNS:
        raise ValueError(f"Unsupported report type: {report_type}")
    columns = REPORT_COLUMNS[report_type]
    rows: List[Dict] = []
    for record in records:
        row = {}
        for col in columns:
            value = record.get(col)
            if col == "date":
                value = _format_date(value or record.get("updated_at") or record.get("created_at"))
            elif value is None:
                value = 0 if col in ("amount", "value", "shares", "price", "allocated", "spent",
                                     "remaining", "monthly_cost") else ""
            row[col] = value
        rows.append(row)
    return rows


def _header(col: str) -> str:
    return col.replace("_", " ").title()


def export_csv(rows: Sequence[Dict], columns: Sequence[str]) -> bytes:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(columns), lineterminator="\n", extrasaction="ignore")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")


def _sheet_title(title: Optional[str]) -> str:
    cleaned = INVALID_TITLE_REGEX.sub("", title or "").strip()[:_XLSX_SHEET_LIMIT].strip()
    return cleaned or "Report"


def export_xlsx(rows: Sequence[Dict], columns: Sequence[str], title: str) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = _sheet_title(title)
    ws.append([_header(c) for c in columns])
    for row in rows:
        ws.append([row.get(c) for c in columns])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def export_pdf(
    rows: Sequence[Dict],
    columns: Sequence[str],
    title: str,
    description: Optional[str] = None,
    range_label: Optional[str] = None,
    generated_on: Optional[dt.date] = None,
) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=letter, title=title)
    styles = getSampleStyleSheet()
    story = [Paragraph(title, styles["Title"])]
    if description:
        story.append(Paragraph(description, styles["Normal"]))
    story.append(Paragraph(f"Generated on: {(generated_on or dt.date.today()).isoformat()}", styles["Normal"]))
    if range_label:
        story.append(Paragraph(f"Time Range: {range_label}", styles["Normal"]))
    story.append(Spacer(1, 12))

    data = [[_header(c) for c in columns]]
    data.extend([str(row.get(c, "")) for c in columns] for row in rows)
    # repeatRows=1 redraws the header row on every page
    table = Table(data, repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ]
        )
    )
    story.append(table)
    doc.build(story)
    return buffer.getvalue()


def export_report(
    report_type: str,
    records: Iterable[Dict],
    fmt: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    range_key: str = "all",
) -> bytes:
    """Render a report snapshot in ``fmt``; raises ValueError for unknown formats."""
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported format: {fmt}")
    rows = prepare_report_rows(report_type, records)
    columns = REPORT_COLUMNS[report_type]
    title = title or f"{report_type.replace('-', ' ').title()} Report"
    range_label = an.TIME_RANGES.get(range_key, range_key)
    if fmt == "csv":
        return export_csv(rows, columns)
    if fmt == "xlsx":
        return export_xlsx(rows, columns, title)
    if fmt == "pdf":
        return export_pdf(rows, columns, title, description, range_label)
    payload = {"title": title, "type": report_type, "range": range_label, "rows": rows}
    return json.dumps(payload, indent=2, default=str).encode("utf-8")


def report_filename(report_type: str, fmt: str, today: Optional[dt.date] = None) -> str:
    return f"{report_type}-report-{(today or dt.date.today()).isoformat()}.{fmt}"
