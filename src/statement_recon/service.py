"""Service layer that composes file access and reconciliation.

This module provides the file-level API: it reads a statement, parses it,
applies the pure reconciliation functions and writes results back.
"""

import logging
from collections.abc import Callable, Mapping

from .accounts import AccountDirectory
from .config import Settings
from .csv_table import parse_csv, serialize_csv
from .exceptions import FileAccessError
from .models import (
    Account,
    BatchValidationResult,
    CorrectionResult,
    CsvTable,
    SplitResult,
    ValidationResult,
)
from .reconciler import correct_table, split_table, validate_table
from .storage import FileStore

logger = logging.getLogger(__name__)

STATEMENT_SUFFIX = ".csv"


def load_table(content: str, file_name: str, delimiter: str = ";") -> CsvTable:
    """
    Parse statement content, logging and tolerating malformed input.

    A parse failure keeps the rows read before it.
    """
    outcome = parse_csv(content, delimiter=delimiter)
    if outcome.error is not None:
        logger.error(
            f"Error while parsing {file_name}: {outcome.error} "
            f"(keeping {len(outcome.table.rows)} row(s))"
        )
    return outcome.table


def detect_all(
    file_names: list[str],
    loader: Callable[[str], str],
    directory: Mapping[str, Account],
    delimiter: str = ";",
) -> BatchValidationResult:
    """
    Validate several files one after the other, in the order given.

    A file that fails to load or validate is logged and left out of the
    aggregate; the remaining files are still processed.

    Args:
        file_names: Files to validate, in reporting order
        loader: Returns the text content of a file name
        directory: Account code -> account snapshot
        delimiter: CSV field delimiter

    Returns:
        Aggregate of all inconsistencies, per-file results and failed files
    """
    batch = BatchValidationResult()

    for file_name in file_names:
        try:
            table = load_table(loader(file_name), file_name, delimiter)
            result = validate_table(table, file_name, directory)
        except Exception as e:
            logger.error(f"Error while validating {file_name}: {e}")
            batch.failed_files.append(file_name)
            continue

        batch.results[file_name] = result
        batch.inconsistencies.extend(result.inconsistencies)

    logger.info(
        f"Checked {len(batch.results)} file(s): "
        f"{len(batch.inconsistencies)} inconsistency(ies), "
        f"{len(batch.failed_files)} failure(s)"
    )
    return batch


class ReconciliationService:
    """Service for validating, correcting and splitting statement files."""

    def __init__(
        self,
        settings: Settings,
        store: FileStore | None = None,
        accounts: AccountDirectory | None = None,
    ):
        """Initialize the reconciliation service."""
        self.settings = settings
        self.store = (
            store if store is not None else FileStore(settings.base_dir, settings.csv_encoding)
        )
        self.accounts = (
            accounts if accounts is not None else AccountDirectory(settings.accounts_path)
        )

    def _path(self, file_name: str) -> str:
        return f"{self.settings.data_dir}/{file_name}"

    def _read(self, file_name: str, operation: str) -> str:
        try:
            return self.store.read_text(self._path(file_name))
        except FileAccessError as e:
            raise FileAccessError(
                operation, file_name, f"Error during {operation} of {file_name}: {e}"
            ) from e

    def _write(self, file_name: str, table: CsvTable, operation: str) -> None:
        content = serialize_csv(table, delimiter=self.settings.csv_delimiter)
        try:
            self.store.write_text(self._path(file_name), content)
        except FileAccessError as e:
            raise FileAccessError(
                operation, file_name, f"Error during {operation} of {file_name}: {e}"
            ) from e

    def _load_table(self, file_name: str, operation: str) -> CsvTable:
        content = self._read(file_name, operation)
        return load_table(content, file_name, self.settings.csv_delimiter)

    def list_statement_files(self) -> list[str]:
        """Names of the statement files in the data folder, in listing order."""
        files = self.store.list_files(self.settings.data_dir)
        return [name for name in files if name.endswith(STATEMENT_SUFFIX)]

    def validate_file(self, file_name: str) -> ValidationResult:
        """
        Check that every row's declared account matches its origin.

        Args:
            file_name: Statement file name inside the data folder

        Returns:
            Validation result for the file
        """
        table = self._load_table(file_name, "validation")
        result = validate_table(table, file_name, self.accounts.snapshot())

        logger.info(
            f"Validated {file_name}: {result.inconsistent_lines} of "
            f"{result.total_lines} line(s) inconsistent"
        )
        return result

    def detect_all_inconsistencies(self) -> BatchValidationResult:
        """
        Validate every statement file of the data folder.

        Files are processed sequentially in listing order so the report order
        is deterministic.
        """
        file_names = self.list_statement_files()
        return detect_all(
            file_names,
            loader=lambda name: self._read(name, "validation"),
            directory=self.accounts.snapshot(),
            delimiter=self.settings.csv_delimiter,
        )

    def correct_file(self, file_name: str, dry_run: bool = False) -> CorrectionResult:
        """
        Rewrite the declared account of every row to the one its origin implies.

        The file is only rewritten when at least one row changed.

        Args:
            file_name: Statement file name inside the data folder
            dry_run: Compute the correction without writing it

        Returns:
            Correction result; ``written`` tells whether the file was rewritten
        """
        table = self._load_table(file_name, "correction")
        result = correct_table(table, file_name, self.accounts.snapshot())

        if result.corrected > 0 and not dry_run:
            self._write(file_name, result.corrected_table, "correction")
            result.written = True
            logger.info(
                f"Corrected {file_name}: {result.corrected} line(s) modified"
            )
        elif result.corrected == 0:
            logger.info(f"{file_name} needs no correction")

        if result.errors:
            logger.warning(
                f"{file_name}: {result.errors} line(s) with an invalid prefix left unchanged"
            )

        return result

    def split_file(self, file_name: str) -> SplitResult:
        """
        Split a statement holding several accounts into one file per account.

        The original file is kept; deleting it is left to the caller. A group
        whose target name equals the original only replaces it when every row
        of the original has a target; otherwise that group is skipped and
        reported in ``skipped_files``. When it is written, it is written last
        so a failed write of another group leaves the original untouched.

        Args:
            file_name: Statement file name inside the data folder

        Returns:
            Split result; ``created_files`` lists the files written
        """
        table = self._load_table(file_name, "split")
        result = split_table(table, file_name, self.accounts.snapshot())

        others = [group for group in result.groups if group.file_name != file_name]
        replacing = [group for group in result.groups if group.file_name == file_name]

        if replacing and result.errors:
            for group in replacing:
                logger.warning(
                    f"Not writing {group.file_name}: it would replace the original "
                    f"and drop the rows of {result.errors} unmatched account(s)"
                )
                result.skipped_files.append(group.file_name)
            result.groups = others
            replacing = []

        for group in others + replacing:
            self._write(group.file_name, group.table, "split")
            logger.info(
                f"Created {group.file_name} "
                f"({len(group.rows)} line(s) for account '{group.compte}')"
            )

        if replacing:
            logger.info(
                f"Original file {file_name} was replaced by the rows of "
                f"account '{replacing[0].compte}'"
            )
        elif result.groups:
            logger.info(
                f"Original file {file_name} can be deleted "
                f"({len(result.groups)} file(s) created)"
            )

        return result
