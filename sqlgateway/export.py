"""Row export to CSV and JSON downloads."""
import csv
import io
import json
from typing import List

from sqlgateway.models import Row


SUPPORTED_FORMATS = {
    "csv": ("text/csv", "export.csv"),
    "json": ("application/json", "export.json"),
}


def rows_to_csv(rows: List[Row]) -> str:
    """
    Render rows as CSV using the first row's keys as the header.

    Keys missing from later rows and None values are written as empty
    fields. An empty row list gives an empty string.
    """
    if not rows:
        return ""

    headers = list(rows[0].keys())
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=headers, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def rows_to_json(rows: List[Row]) -> str:
    return json.dumps(rows, default=str)


def render_export(rows: List[Row], fmt: str) -> str:
    if fmt == "csv":
        return rows_to_csv(rows)
    if fmt == "json":
        return rows_to_json(rows)
    raise ValueError(f"Unsupported format: {fmt}")
