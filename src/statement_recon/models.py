"""Pydantic domain models for StatementRecon."""

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import CsvParseError

# Label used in place of an account name when a prefix has no directory entry
INVALID_PREFIX_LABEL = "PRÉFIXE INVALIDE"

Row = dict[str, str]

# ============================================================================
# Configuration Models
# ============================================================================


class Account(BaseModel):
    """An account directory entry, keyed by its code in the directory."""

    name: str
    color: str = ""  # Hex color used by display layers


# ============================================================================
# CSV Models
# ============================================================================


class CsvTable(BaseModel):
    """A delimited table: ordered header plus rows keyed by column name.

    The header is kept separately from the rows so serialization reproduces
    the original column order, including columns this package never reads.
    """

    header: list[str] = Field(default_factory=list)
    rows: list[Row] = Field(default_factory=list)


class ParseOutcome(BaseModel):
    """Result of parsing CSV text.

    When ``error`` is set, ``table`` holds the rows read before the failure.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    table: CsvTable
    error: CsvParseError | None = None

    @property
    def is_partial(self) -> bool:
        return self.error is not None


# ============================================================================
# Validation Models
# ============================================================================


class Inconsistency(BaseModel):
    """A row whose declared account disagrees with its origin tag."""

    file_name: str
    line_index: int  # 0-based among parsed rows, header excluded
    source: str
    compte_found: str
    compte_expected: str
    prefix: str

    @property
    def is_invalid_prefix(self) -> bool:
        """True when the prefix itself is unknown, not just the name."""
        return self.compte_expected.startswith(f"{INVALID_PREFIX_LABEL}: ")


class ValidationResult(BaseModel):
    """Outcome of validating one table."""

    is_valid: bool
    inconsistencies: list[Inconsistency] = Field(default_factory=list)
    total_lines: int = 0
    inconsistent_lines: int = 0


class BatchValidationResult(BaseModel):
    """Outcome of validating several files, in processing order.

    Files that could not be read or validated appear only in ``failed_files``.
    """

    inconsistencies: list[Inconsistency] = Field(default_factory=list)
    results: dict[str, ValidationResult] = Field(default_factory=dict)
    failed_files: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.inconsistencies


# ============================================================================
# Correction and Split Models
# ============================================================================


class CorrectionResult(BaseModel):
    """Outcome of correcting the declared accounts of one table."""

    corrected_table: CsvTable
    corrected: int = 0
    errors: int = 0  # Rows whose prefix has no directory entry
    written: bool = False  # Set by the service when the file was rewritten


class SplitGroup(BaseModel):
    """Rows of one account, destined for their own file."""

    file_name: str
    compte: str
    prefix: str
    table: CsvTable

    @property
    def rows(self) -> list[Row]:
        return self.table.rows


class SplitResult(BaseModel):
    """Outcome of splitting a table by declared account.

    An empty ``groups`` list with ``errors == 0`` means no split was needed.
    ``skipped_files`` lists targets that were not written because they would
    have replaced the original file while some of its rows had no target.
    """

    groups: list[SplitGroup] = Field(default_factory=list)
    errors: int = 0  # Account names with no matching directory entry
    skipped_files: list[str] = Field(default_factory=list)

    @property
    def created_files(self) -> list[str]:
        return [group.file_name for group in self.groups]
