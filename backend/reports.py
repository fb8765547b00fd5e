"""
Fee report: filter fee records, summarise them, render them for print and
export them as a two-sheet xlsx workbook.

Works on the expanded shapes returned by the list handlers: a fee's
`studentId` is {"id", "name", ...} and a student's `classId` is an expanded
class with its `departmentId` as {"id", "name"}. Bare id strings are
accepted wherever an expanded reference is expected.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from html import escape
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import Workbook

FILTER_MODES = ("dateRange", "student", "class")
FEE_STATUSES = ("paid", "partial", "unpaid")

DETAIL_SHEET = "Fee Records"
SUMMARY_SHEET = "Summary"
DETAIL_HEADER = ["Student", "Class", "Finance Type", "Amount", "Paid", "Balance", "Status", "Date"]
DATE_FORMAT = "%Y-%m-%d"


@dataclass
class FeeFilter:
    """One of three mutually exclusive selections; `mode` picks which fields apply"""

    mode: str = "dateRange"
    start: Optional[date] = None
    end: Optional[date] = None
    student_id: Optional[str] = None
    class_id: Optional[str] = None

    def describe(self) -> str:
        if self.mode == "dateRange" and self.start and self.end:
            return f"{self.start.isoformat()} to {self.end.isoformat()}"
        if self.mode == "student" and self.student_id:
            return f"student {self.student_id}"
        if self.mode == "class" and self.class_id:
            return f"class {self.class_id}"
        return "all records"


@dataclass
class FeeSummary:
    totalAmount: float = 0
    totalPaid: float = 0
    totalPending: float = 0
    paidCount: int = 0
    partialCount: int = 0
    unpaidCount: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAmount": self.totalAmount,
            "totalPaid": self.totalPaid,
            "totalPending": self.totalPending,
            "paidCount": self.paidCount,
            "partialCount": self.partialCount,
            "unpaidCount": self.unpaidCount,
        }


@dataclass
class FeeReport:
    fees: List[Dict[str, Any]]
    summary: FeeSummary
    rows: List[List[Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"fees": self.fees, "summary": self.summary.to_dict()}


def ref_id(value: Any) -> Optional[str]:
    """Id of an expanded reference, or the value itself when it is already an id"""
    if isinstance(value, dict):
        ref = value.get("id") or value.get("_id")
        return str(ref) if ref is not None else None
    if value is None:
        return None
    return str(value)


def as_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


def filter_fees(fees: Sequence[Dict[str, Any]], students: Sequence[Dict[str, Any]],
                selection: FeeFilter) -> List[Dict[str, Any]]:
    if selection.mode == "dateRange" and selection.start and selection.end:
        start, end = selection.start, selection.end
        return [f for f in fees if (d := as_date(f.get("date"))) is not None and start <= d <= end]

    if selection.mode == "student" and selection.student_id:
        return [f for f in fees if ref_id(f.get("studentId")) == selection.student_id]

    if selection.mode == "class" and selection.class_id:
        member_ids = {ref_id(s) for s in students if ref_id(s.get("classId")) == selection.class_id}
        return [f for f in fees if ref_id(f.get("studentId")) in member_ids]

    return list(fees)


def summarize(fees: Sequence[Dict[str, Any]]) -> FeeSummary:
    total_amount = sum(f.get("amount") or 0 for f in fees)
    total_paid = sum(f.get("amountPaid") or 0 for f in fees)
    return FeeSummary(
        totalAmount=total_amount,
        totalPaid=total_paid,
        totalPending=total_amount - total_paid,
        paidCount=sum(1 for f in fees if f.get("status") == "paid"),
        partialCount=sum(1 for f in fees if f.get("status") == "partial"),
        unpaidCount=sum(1 for f in fees if f.get("status") == "unpaid"),
    )


def class_label(cls: Optional[Dict[str, Any]]) -> str:
    if not isinstance(cls, dict):
        return "Unknown"
    dept = cls.get("departmentId")
    dept_name = dept.get("name") if isinstance(dept, dict) else None
    return f"{dept_name or 'Unknown'} - Semester {cls.get('semester')} {cls.get('classMode')} {cls.get('type')}"


def detail_rows(fees: Sequence[Dict[str, Any]], students: Sequence[Dict[str, Any]],
                classes: Sequence[Dict[str, Any]]) -> List[List[Any]]:
    students_by_id = {ref_id(s): s for s in students}
    classes_by_id = {ref_id(c): c for c in classes}
    rows = []
    for fee in fees:
        student_ref = fee.get("studentId")
        student = students_by_id.get(ref_id(student_ref))
        cls = classes_by_id.get(ref_id(student.get("classId"))) if student else None
        name = student_ref.get("name") if isinstance(student_ref, dict) else None
        fee_date = as_date(fee.get("date"))
        rows.append([
            name or (student or {}).get("name") or "Unknown",
            class_label(cls),
            fee.get("financeType"),
            fee.get("amount"),
            fee.get("amountPaid"),
            fee.get("balance"),
            fee.get("status"),
            fee_date.strftime(DATE_FORMAT) if fee_date else "",
        ])
    return rows


def build_report(fees: Sequence[Dict[str, Any]], students: Sequence[Dict[str, Any]],
                 classes: Sequence[Dict[str, Any]], selection: FeeFilter) -> FeeReport:
    filtered = filter_fees(fees, students, selection)
    return FeeReport(
        fees=filtered,
        summary=summarize(filtered),
        rows=detail_rows(filtered, students, classes),
    )


def summary_rows(summary: FeeSummary) -> List[List[Any]]:
    return [
        ["Summary", ""],
        ["Total Amount", summary.totalAmount],
        ["Total Paid", summary.totalPaid],
        ["Total Pending", summary.totalPending],
        ["", ""],
        ["Payment Status", "Count"],
        ["Paid", summary.paidCount],
        ["Partial", summary.partialCount],
        ["Unpaid", summary.unpaidCount],
    ]


def export_filename(today: Optional[date] = None) -> str:
    return f"fee-report_{(today or date.today()).isoformat()}.xlsx"


def export_workbook(report: FeeReport) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = DETAIL_SHEET
    ws.append(DETAIL_HEADER)
    for row in report.rows:
        ws.append(row)

    ws2 = wb.create_sheet(SUMMARY_SHEET)
    for row in summary_rows(report.summary):
        ws2.append(row)

    mem = BytesIO()
    wb.save(mem)
    return mem.getvalue()


def render_print_html(report: FeeReport, selection: FeeFilter, title: str = "Fee Report") -> str:
    head = "".join(f"<th>{escape(h)}</th>" for h in DETAIL_HEADER)
    body = "".join(
        "<tr>" + "".join(f"<td>{escape(str(v)) if v is not None else ''}</td>" for v in row) + "</tr>"
        for row in report.rows
    ) or f'<tr><td colspan="{len(DETAIL_HEADER)}">No fee records found</td></tr>'
    summary = "".join(
        f"<tr><th>{escape(str(label))}</th><td>{escape(str(value))}</td></tr>"
        for label, value in summary_rows(report.summary)[1:]
        if label
    )
    return (
        "<!DOCTYPE html>"
        f"<html><head><meta charset=\"utf-8\"><title>{escape(title)}</title>"
        "<style>body{font-family:sans-serif}table{border-collapse:collapse;margin-bottom:1.5em}"
        "th,td{border:1px solid #999;padding:4px 8px;text-align:left}</style></head>"
        "<body onload=\"window.print()\">"
        f"<h1>{escape(title)}</h1><p>Filter: {escape(selection.describe())}</p>"
        f"<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"
        f"<h2>Summary</h2><table>{summary}</table>"
        "</body></html>"
    )
