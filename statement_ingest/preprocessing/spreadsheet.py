import csv
import io

import openpyxl

from statement_ingest.preprocessing.exceptions import SpreadsheetError


def workbook_to_text(xlsx_bytes: bytes) -> str:
    """Render every sheet of a workbook as CSV text under a sheet header."""
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(xlsx_bytes), read_only=True, data_only=True)
    except Exception as exc:
        raise SpreadsheetError(f"Failed to open workbook: {exc}") from exc

    sections: list[str] = []
    try:
        for sheet in workbook.worksheets:
            buf = io.StringIO()
            writer = csv.writer(buf, lineterminator="\n")
            for row in sheet.iter_rows(values_only=True):
                if all(cell is None for cell in row):
                    continue
                writer.writerow(["" if cell is None else cell for cell in row])
            sections.append(f"=== Sheet: {sheet.title} ===\n{buf.getvalue()}")
    finally:
        workbook.close()
    return "\n".join(sections)


def parse_csv_rows(text: str) -> list[dict[str, str]]:
    """Parse CSV text with a header row. Malformed input yields no rows."""
    try:
        reader = csv.DictReader(io.StringIO(text))
        rows = []
        for row in reader:
            if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
                continue
            rows.append({str(key): (value or "") for key, value in row.items() if key is not None})
        return rows
    except csv.Error:
        return []
