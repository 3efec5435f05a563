from io import BytesIO
from typing import Any, Mapping, Sequence

import openpyxl
from openpyxl.utils import get_column_letter

from .formatting import format_duration
from .stats import Totals, project_label

HEADERS = [
    "Date",
    "Description",
    "Project",
    "Start",
    "End",
    "Duration",
    "Hours",
    "Billable",
]


def build_report_workbook(
    entries: Sequence[Any],
    projects: Mapping[str, Any],
    totals: Totals,
    title: str = "Time entries",
) -> BytesIO:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = title[:31]
    ws.append(HEADERS)

    for entry in entries:
        ws.append(
            [
                entry.start_time.date().isoformat(),
                entry.description,
                project_label(entry.project_id, projects),
                entry.start_time.strftime("%H:%M"),
                entry.end_time.strftime("%H:%M") if entry.end_time else "",
                format_duration(entry.duration),
                round(entry.duration / 3600, 2),
                "Yes" if entry.is_billable else "No",
            ]
        )

    ws.append([])
    ws.append(["Total", "", "", "", "", format_duration(totals.total_duration), round(totals.total_duration / 3600, 2)])
    ws.append(["Billable", "", "", "", "", format_duration(totals.billable_duration), round(totals.billable_duration / 3600, 2)])
    ws.append(["Earnings", round(totals.earnings, 2)])

    for col in range(1, len(HEADERS) + 1):
        ws.column_dimensions[get_column_letter(col)].auto_size = True

    stream = BytesIO()
    wb.save(stream)
    stream.seek(0)
    return stream
