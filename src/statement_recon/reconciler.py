"""Core reconciliation logic for checking and repairing the declared account of statement rows."""

import logging
import re
from collections.abc import Mapping
from datetime import date, datetime
from functools import cmp_to_key

from .models import (
    INVALID_PREFIX_LABEL,
    Account,
    CorrectionResult,
    CsvTable,
    Inconsistency,
    Row,
    SplitGroup,
    SplitResult,
    ValidationResult,
)

logger = logging.getLogger(__name__)

UNKNOWN_PREFIX = "UNKNOWN"

SOURCE_COLUMN = "Source"
COMPTE_COLUMN = "Compte"
DATE_COLUMN = "Date"

_PREFIX_PATTERN = re.compile(r"^([A-Za-z0-9]+)_")


def extract_prefix(source: str) -> str:
    """
    Derive the account code from an origin tag.

    Format: CCAL_01.01.2025_31.01.2025.csv -> CCAL

    Args:
        source: Origin tag, usually the originating file name

    Returns:
        Uppercased code, or UNKNOWN_PREFIX when the tag has no code segment
    """
    match = _PREFIX_PATTERN.match(source)
    return match.group(1).strip().upper() if match else UNKNOWN_PREFIX


def resolve_source(row: Row, file_name_fallback: str) -> str:
    """Origin tag of a row, falling back to the file name when the cell is empty."""
    return row.get(SOURCE_COLUMN) or file_name_fallback


def expected_account_name(prefix: str, directory: Mapping[str, Account]) -> str | None:
    """Display name registered for a prefix, or None if the prefix is unknown."""
    account = directory.get(prefix)
    return account.name if account is not None else None


def find_code_by_name(name: str, directory: Mapping[str, Account]) -> str | None:
    """
    Reverse lookup of an account code from its display name.

    Names are assumed unique; if two codes share a name, the first one in
    directory iteration order wins.
    """
    for code, account in directory.items():
        if account.name == name:
            return code
    return None


def parse_statement_date(value: str | None) -> date | None:
    """Parse a dd/mm/yyyy date, returning None when it is not a valid date."""
    try:
        return datetime.strptime((value or "").strip(), "%d/%m/%Y").date()
    except ValueError:
        return None


def _compare_by_date(a: Row, b: Row) -> int:
    # Rows with an unparsable date compare equal to everything
    date_a = parse_statement_date(a.get(DATE_COLUMN))
    date_b = parse_statement_date(b.get(DATE_COLUMN))
    if date_a is None or date_b is None:
        return 0
    return (date_a > date_b) - (date_a < date_b)


def sort_rows_by_date(rows: list[Row]) -> list[Row]:
    """Return rows sorted ascending by their Date column (stable)."""
    return sorted(rows, key=cmp_to_key(_compare_by_date))


def validate_table(
    table: CsvTable,
    file_name_fallback: str,
    directory: Mapping[str, Account],
) -> ValidationResult:
    """
    Flag rows whose declared account disagrees with the account implied by their origin.

    Steps, per row:
    1. Resolve the origin tag (Source, or the file name when empty)
    2. Extract the prefix
    3. Unknown prefix: flag with "PRÉFIXE INVALIDE: <prefix>" and move on
    4. Known prefix: flag when Compte differs from the registered name

    Args:
        table: Parsed statement
        file_name_fallback: File name, used when a row has no Source
        directory: Account code -> account snapshot

    Returns:
        Validation result covering every parsed row
    """
    inconsistencies: list[Inconsistency] = []
    total_lines = 0

    for index, row in enumerate(table.rows):
        total_lines += 1

        source = resolve_source(row, file_name_fallback)
        compte_found = row.get(COMPTE_COLUMN) or ""
        prefix = extract_prefix(source)

        compte_expected = expected_account_name(prefix, directory)
        if compte_expected is None:
            inconsistencies.append(
                Inconsistency(
                    file_name=file_name_fallback,
                    line_index=index,
                    source=source,
                    compte_found=compte_found,
                    compte_expected=f"{INVALID_PREFIX_LABEL}: {prefix}",
                    prefix=prefix,
                )
            )
            continue

        if compte_found != compte_expected:
            inconsistencies.append(
                Inconsistency(
                    file_name=file_name_fallback,
                    line_index=index,
                    source=source,
                    compte_found=compte_found,
                    compte_expected=compte_expected,
                    prefix=prefix,
                )
            )

    return ValidationResult(
        is_valid=not inconsistencies,
        inconsistencies=inconsistencies,
        total_lines=total_lines,
        inconsistent_lines=len(inconsistencies),
    )


def correct_table(
    table: CsvTable,
    file_name_fallback: str,
    directory: Mapping[str, Account],
) -> CorrectionResult:
    """
    Rewrite the declared account of each row to the name its origin implies.

    Works on a copy of the table: row order and every column other than
    Compte are preserved. Rows with an unknown prefix are left untouched and
    only counted in ``errors``.

    Args:
        table: Parsed statement
        file_name_fallback: File name, used when a row has no Source
        directory: Account code -> account snapshot

    Returns:
        Correction result; the corrected table is returned even when nothing changed
    """
    corrected_table = table.model_copy(deep=True)
    corrected = 0
    errors = 0

    for index, row in enumerate(corrected_table.rows):
        prefix = extract_prefix(resolve_source(row, file_name_fallback))
        compte_expected = expected_account_name(prefix, directory)

        if compte_expected is None:
            errors += 1
            logger.warning(
                f"Invalid prefix '{prefix}' in {file_name_fallback}, line {index}"
            )
            continue

        compte_found = row.get(COMPTE_COLUMN)
        if compte_found != compte_expected:
            row[COMPTE_COLUMN] = compte_expected
            corrected += 1
            logger.debug(
                f"Line {index} corrected: Compte='{compte_found}' -> '{compte_expected}'"
            )

    if corrected and COMPTE_COLUMN not in corrected_table.header:
        corrected_table.header.append(COMPTE_COLUMN)

    return CorrectionResult(
        corrected_table=corrected_table, corrected=corrected, errors=errors
    )


def derive_split_file_name(prefix: str, original_file_name: str) -> str:
    """
    Build the file name for one account's share of a split file.

    Only the leading account segment is replaced:
    CCAL_01.01.2025_31.01.2025.csv with prefix BNP -> BNP_01.01.2025_31.01.2025.csv
    """
    date_part = "_".join(original_file_name.split("_")[1:])
    return f"{prefix}_{date_part}"


def group_rows_by_compte(rows: list[Row]) -> dict[str, list[Row]]:
    """Group rows by the literal value of their Compte column, in first-seen order."""
    groups: dict[str, list[Row]] = {}
    for row in rows:
        groups.setdefault(row.get(COMPTE_COLUMN) or "", []).append(row)
    return groups


def split_table(
    table: CsvTable,
    original_file_name: str,
    directory: Mapping[str, Account],
) -> SplitResult:
    """
    Partition a statement into one table per declared account.

    Steps:
    1. Group rows by their Compte value as labeled (not by resolved prefix)
    2. A single group needs no split: return an empty result
    3. For each group, find the account code whose name matches; unmatched
       groups are counted in ``errors`` and dropped
    4. Name the new file after that code and sort its rows by date

    The original file is never touched here.

    Args:
        table: Parsed statement
        original_file_name: Name of the file being split
        directory: Account code -> account snapshot

    Returns:
        Split result with one group per matched account
    """
    compte_groups = group_rows_by_compte(table.rows)

    if len(compte_groups) <= 1:
        logger.info(
            f"{original_file_name} holds a single account, no split needed"
        )
        return SplitResult()

    groups: list[SplitGroup] = []
    errors = 0

    for compte, rows in compte_groups.items():
        prefix = find_code_by_name(compte, directory)
        if prefix is None:
            logger.warning(
                f"No account code found for '{compte}' in {original_file_name}"
            )
            errors += 1
            continue

        file_name = derive_split_file_name(prefix, original_file_name)
        sorted_rows = [dict(row) for row in sort_rows_by_date(rows)]

        groups.append(
            SplitGroup(
                file_name=file_name,
                compte=compte,
                prefix=prefix,
                table=CsvTable(header=list(table.header), rows=sorted_rows),
            )
        )

    return SplitResult(groups=groups, errors=errors)
