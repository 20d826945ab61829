"""Domain errors for pgephemeral."""

from enum import Enum


class PgEphemeralError(RuntimeError):
    """Raised when the ephemeral database run cannot continue safely."""


class ConfigErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"


class ConfigError(PgEphemeralError):
    """Raised when the connection configuration cannot be loaded."""

    def __init__(self, kind: ConfigErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class DatabaseConnectionError(PgEphemeralError):
    """Raised when a connection cannot be opened or closed."""


class StatementError(PgEphemeralError):
    """Raised when a SQL statement fails on an open handle."""

    def __init__(self, statement: str, message: str):
        super().__init__(message)
        self.statement = statement


class CommandError(PgEphemeralError):
    """Raised when an external command cannot run or exits nonzero."""

    def __init__(self, message: str, returncode=None):
        super().__init__(message)
        self.returncode = returncode


class ExportError(PgEphemeralError):
    """Raised in strict mode when the schema dump fails."""


class SchemaImportError(PgEphemeralError):
    """Raised in strict mode when the schema import fails."""


class ProvisionError(PgEphemeralError):
    """Raised when the ephemeral database cannot be dropped, created or reached."""
