"""Custom exceptions for StatementRecon."""


class StatementReconError(Exception):
    """Base exception for all StatementRecon errors."""

    pass


class ConfigurationError(StatementReconError):
    """Raised when configuration is invalid or missing."""

    pass


class FileAccessError(StatementReconError):
    """Raised when reading, writing or listing a statement file fails."""

    def __init__(self, operation: str, path: str, message: str | None = None):
        self.operation = operation
        self.path = path
        super().__init__(message or f"{operation} failed for {path}")


class CsvParseError(StatementReconError):
    """Malformed CSV content.

    Returned by the parser alongside the rows read before the failure rather
    than raised, so callers decide whether a partial table is acceptable.
    """

    def __init__(self, message: str, line_number: int | None = None):
        self.line_number = line_number
        super().__init__(message)
