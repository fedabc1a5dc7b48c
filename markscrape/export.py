"""
Serialize accumulated results as JSON, CSV, SQL inserts or vector-ready JSON.

Every function here returns text; writing it anywhere is up to the caller.
"""

import csv
import io
import json
import re
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from .errors import ExportError
from .models import ExtractionType, ScrapeResult, Selector

FORMATS = ("json", "csv", "sql-insert", "vector-ready")

EXTENSIONS = {
    "json": "json",
    "csv": "csv",
    "sql-insert": "sql",
    "vector-ready": "json",
}

LIST_DELIMITER = " | "
CSV_HEADER = ["url", "record", "field_name", "field_type", "value"]
DEFAULT_TABLE = "scraped_data"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def export_filename(format: str, now: Optional[datetime] = None) -> str:
    if format not in EXTENSIONS:
        raise ExportError(format, "unsupported format")
    now = now or datetime.now()
    return f"scraping-results-{now.strftime('%Y%m%d-%H%M%S')}.{EXTENSIONS[format]}"


def export_as(
    results: Sequence[ScrapeResult],
    format: str,
    selectors: Optional[Sequence[Selector]] = None,
    table_name: str = DEFAULT_TABLE,
) -> str:
    """Serialize results. ``selectors`` supplies field types for csv/sql rows."""
    if format == "json":
        return to_json(results)
    if format == "csv":
        return to_csv(results, selectors)
    if format == "sql-insert":
        return to_sql(results, table_name, selectors)
    if format == "vector-ready":
        return to_vector_ready(results)
    raise ExportError(format, f"unsupported format, expected one of {', '.join(FORMATS)}")


def _dump(results: Sequence[ScrapeResult]) -> List[dict]:
    return [r.model_dump(mode="json") for r in results]


def to_json(results: Sequence[ScrapeResult]) -> str:
    return json.dumps(_dump(results), indent=2, ensure_ascii=False)


def to_vector_ready(results: Sequence[ScrapeResult]) -> str:
    # Same payload as json; the embedding pipeline reads the tag
    return json.dumps(
        {"format": "vector-ready", "results": _dump(results)},
        indent=2,
        ensure_ascii=False,
    )


def _field_types(selectors: Optional[Sequence[Selector]]) -> Dict[str, str]:
    return {s.field_name: s.extraction_type.value for s in selectors or []}


def _rows(results: Sequence[ScrapeResult], selectors: Optional[Sequence[Selector]]):
    types = _field_types(selectors)
    for result in results:
        for record_index, record in enumerate(result.records):
            for field_name, value in record.items():
                # "list" is reserved for list values so rows decode unambiguously
                if isinstance(value, list):
                    field_type = ExtractionType.LIST.value
                else:
                    field_type = types.get(field_name, ExtractionType.TEXT.value)
                    if field_type == ExtractionType.LIST.value:
                        field_type = ExtractionType.TEXT.value
                yield result.url, record_index, field_name, field_type, value


def to_csv(results: Sequence[ScrapeResult], selectors: Optional[Sequence[Selector]] = None) -> str:
    """
    One row per field value: url, record, field_name, field_type, value.

    The ``record`` column is the record's index within its URL, so fields of
    the same record can be regrouped; list values are joined with `` | ``.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for url, record_index, field_name, field_type, value in _rows(results, selectors):
        if isinstance(value, list):
            value = LIST_DELIMITER.join(value)
        writer.writerow([url, record_index, field_name, field_type, value])
    return buffer.getvalue()


def _sql_string(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def to_sql(
    results: Sequence[ScrapeResult],
    table_name: str = DEFAULT_TABLE,
    selectors: Optional[Sequence[Selector]] = None,
) -> str:
    """
    Long-form insert statements, one row per field value.

    List values are stored as JSON arrays so the rows read back into the
    same record shape.
    """
    if not _IDENTIFIER.match(table_name or ""):
        raise ExportError("sql-insert", f"invalid table name {table_name!r}")

    lines = [
        f"CREATE TABLE IF NOT EXISTS {table_name} (",
        "  url TEXT NOT NULL,",
        "  record_index INTEGER NOT NULL,",
        "  field_name TEXT NOT NULL,",
        "  field_type TEXT NOT NULL,",
        "  value TEXT",
        ");",
    ]
    for url, record_index, field_name, field_type, value in _rows(results, selectors):
        if isinstance(value, list):
            value = json.dumps(value, ensure_ascii=False)
        values = ", ".join([_sql_string(url), str(record_index), _sql_string(field_name), _sql_string(field_type), _sql_string(value)])
        lines.append(f"INSERT INTO {table_name} (url, record_index, field_name, field_type, value) VALUES ({values});")
    return "\n".join(lines) + "\n"


def records_from_rows(rows) -> Dict[str, List[dict]]:
    """Rebuild url -> records from (url, record_index, field_name, field_type, value) rows."""
    grouped: Dict[str, Dict[int, dict]] = {}
    for url, record_index, field_name, field_type, value in rows:
        if field_type == ExtractionType.LIST.value and isinstance(value, str):
            value = json.loads(value)
        grouped.setdefault(url, {}).setdefault(int(record_index), {})[field_name] = value
    return {url: [records[i] for i in sorted(records)] for url, records in grouped.items()}
