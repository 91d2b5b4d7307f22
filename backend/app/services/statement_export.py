"""
Spreadsheet export for bank statements.
"""

from dataclasses import dataclass, asdict
from io import BytesIO
from typing import List

from openpyxl import Workbook
from openpyxl.styles import Font

SHEET_TITLE = "Bank Statement"

# (header, column width)
COLUMNS = [
    ("Student Name", 20),
    ("Class", 15),
    ("Date", 12),
    ("Time", 10),
    ("Description", 30),
    ("Type", 15),
    ("Amount", 10),
    ("Statement Period", 20),
    ("Balance", 12),
    ("Account", 22),
]


@dataclass
class StatementRow:
    """One transaction projected into a flat statement line."""
    student_name: str
    class_name: str
    date: str
    time: str
    description: str
    type: str
    amount: float
    statement_period: str
    balance: float
    account: str


def build_workbook(rows: List[StatementRow]) -> bytes:
    """Serialize statement rows to an .xlsx document."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE

    sheet.append([header for header, _ in COLUMNS])
    for cell in sheet[1]:
        cell.font = Font(bold=True)

    for index, (_, width) in enumerate(COLUMNS, start=1):
        sheet.column_dimensions[sheet.cell(row=1, column=index).column_letter].width = width

    for row in rows:
        sheet.append(list(asdict(row).values()))

    # Money columns
    for column in ("G", "I"):
        for cell in sheet[column][1:]:
            cell.number_format = "0.00"

    sheet.freeze_panes = "A2"

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
