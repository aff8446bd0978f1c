"""StatementRecon - Check and repair the declared account of bank statement CSV files."""

__version__ = "0.1.0"

from .accounts import AccountDirectory
from .config import Settings, load_settings
from .csv_table import parse_csv, serialize_csv
from .models import (
    Account,
    BatchValidationResult,
    CorrectionResult,
    CsvTable,
    Inconsistency,
    SplitGroup,
    SplitResult,
    ValidationResult,
)
from .reconciler import correct_table, extract_prefix, split_table, validate_table
from .service import ReconciliationService, detect_all
from .storage import FileStore

__all__ = [
    "Settings",
    "load_settings",
    "AccountDirectory",
    "FileStore",
    "Account",
    "BatchValidationResult",
    "CorrectionResult",
    "CsvTable",
    "Inconsistency",
    "SplitGroup",
    "SplitResult",
    "ValidationResult",
    "parse_csv",
    "serialize_csv",
    "extract_prefix",
    "validate_table",
    "correct_table",
    "split_table",
    "detect_all",
    "ReconciliationService",
]
