"""CSV parsing and serialization for bank statement tables."""

import csv
import io
import logging

from .exceptions import CsvParseError
from .models import CsvTable, ParseOutcome, Row

logger = logging.getLogger(__name__)

DEFAULT_DELIMITER = ";"

_BOM = "\ufeff"


def _is_blank(record: list[str]) -> bool:
    return not record or record == [""]


def parse_csv(text: str, delimiter: str = DEFAULT_DELIMITER) -> ParseOutcome:
    """
    Parse delimited text into a table.

    The first non-blank record is the header; blank records are skipped.
    Short records are padded with empty strings and surplus trailing fields
    are dropped.

    Malformed content does not raise: parsing stops at the failing record and
    the outcome carries the rows read so far plus the error.

    Args:
        text: The CSV content
        delimiter: Field delimiter

    Returns:
        Parse outcome with the table and an optional error
    """
    if text.startswith(_BOM):
        text = text[len(_BOM) :]

    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, strict=True)
    header: list[str] = []
    rows: list[Row] = []

    try:
        for record in reader:
            if _is_blank(record):
                continue

            if not header:
                header = record
                continue

            if len(record) > len(header):
                logger.debug(
                    f"Line {reader.line_num}: dropping {len(record) - len(header)} "
                    f"field(s) beyond the header"
                )
            values = record + [""] * (len(header) - len(record))
            rows.append(dict(zip(header, values)))
    except csv.Error as e:
        error = CsvParseError(
            f"Malformed CSV at line {reader.line_num}: {e}",
            line_number=reader.line_num,
        )
        return ParseOutcome(table=CsvTable(header=header, rows=rows), error=error)

    return ParseOutcome(table=CsvTable(header=header, rows=rows))


def serialize_csv(table: CsvTable, delimiter: str = DEFAULT_DELIMITER) -> str:
    """
    Serialize a table back to delimited text.

    Columns follow the table header; a field missing from a row is written
    empty. Quoting is applied only where a value requires it.
    """
    buffer = io.StringIO()
    writer = csv.writer(
        buffer,
        delimiter=delimiter,
        quoting=csv.QUOTE_MINIMAL,
        lineterminator="\r\n",
    )
    writer.writerow(table.header)
    for row in table.rows:
        writer.writerow([row.get(column, "") for column in table.header])
    return buffer.getvalue()
