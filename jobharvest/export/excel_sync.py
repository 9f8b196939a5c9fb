from __future__ import annotations

from pathlib import Path
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

# (header, record key, column width)
COLUMN_SPEC = [
    ("Job URL", "job_url", 60),
    ("Job ID", "job_id", 18),
    ("Title", "title", 36),
    ("Company", "company", 24),
    ("Location", "location", 26),
    ("Job Type", "job_type", 14),
    ("Category", "job_category", 20),
    ("Salary", "salary", 24),
    ("Posted", "posted_at", 16),
    ("Valid Through", "valid_through", 16),
    ("Tags", "tags", 30),
    ("Source", "data_source", 16),
    ("Scraped At", "scraped_at", 20),
    ("Description", "description_text", 80),
]
COLUMNS = [header for header, _, _ in COLUMN_SPEC]
URL_COLUMN = 1


class ExcelSync:
    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _cell_value(record: dict[str, Any], key: str) -> Any:
        value = record.get(key)
        if isinstance(value, list):
            return ", ".join(str(item) for item in value)
        return value if value is not None else ""

    def sync(self, records: list[dict[str, Any]]) -> int:
        """Write records to the Jobs sheet, updating rows that share a job URL."""
        if self.path.exists():
            wb = load_workbook(self.path)
            ws = wb["Jobs"] if "Jobs" in wb.sheetnames else wb.create_sheet("Jobs")
        else:
            wb = Workbook()
            ws = wb.active
            ws.title = "Jobs"

        if ws.max_row < 1 or ws.cell(1, 1).value != COLUMNS[0]:
            ws.delete_rows(1, ws.max_row)
            ws.append(COLUMNS)
            ws.freeze_panes = "A2"
            ws.auto_filter.ref = f"A1:{get_column_letter(len(COLUMNS))}1"
            for idx in range(1, len(COLUMNS) + 1):
                ws.cell(1, idx).font = Font(bold=True)

        url_to_row = {}
        for row_idx in range(2, ws.max_row + 1):
            url = ws.cell(row_idx, URL_COLUMN).value
            if url:
                url_to_row[str(url)] = row_idx

        exported = 0
        for record in records:
            row_values = [self._cell_value(record, key) for _, key, _ in COLUMN_SPEC]
            url = record.get("job_url")
            if not url:
                continue
            if url in url_to_row:
                ridx = url_to_row[url]
                for cidx, value in enumerate(row_values, start=1):
                    ws.cell(ridx, cidx, value)
            else:
                ws.append(row_values)
                ridx = ws.max_row
                url_to_row[url] = ridx

            link_cell = ws.cell(ridx, URL_COLUMN)
            link_cell.hyperlink = str(link_cell.value)
            link_cell.style = "Hyperlink"
            exported += 1

        for idx, (_, _, width) in enumerate(COLUMN_SPEC, start=1):
            ws.column_dimensions[get_column_letter(idx)].width = width

        wb.save(self.path)
        return exported
