"""Error taxonomy and the exit kinds surfaced to the command line."""

from __future__ import annotations

from enum import IntEnum


class ExitKind(IntEnum):
    SUCCESS = 0
    POLICY_VIOLATION = 1
    CONFIG_ERROR = 2
    IO_ERROR = 3
    INTERNAL_ERROR = 4


class KeycheckError(Exception):
    """Base class for every failure keycheck reports to its caller."""

    exit_kind: ExitKind = ExitKind.INTERNAL_ERROR


class ConfigError(KeycheckError):
    """Invalid scan or policy configuration, raised before any file is scanned."""

    exit_kind = ExitKind.CONFIG_ERROR


class IoError(KeycheckError):
    """Storage that keycheck depends on (baseline, project root) is unreachable."""

    exit_kind = ExitKind.IO_ERROR


class SchemaMismatchError(KeycheckError):
    exit_kind = ExitKind.CONFIG_ERROR

    def __init__(self, expected: str, found: str, role: str = "baseline") -> None:
        self.expected = expected
        self.found = found
        self.role = role
        super().__init__(
            f"{role.capitalize()} snapshot has schemaVersion '{found}', expected '{expected}'. "
            "Regenerate the snapshot with this version of keycheck."
        )


class InternalError(KeycheckError):
    def __init__(self, message: str, *, operation: str, file: str | None = None) -> None:
        self.operation = operation
        self.file = file
        where = f" ({file})" if file else ""
        super().__init__(f"{operation} failed{where}: {message}")


class ParseError(KeycheckError):
    """A single file did not produce a usable syntax tree. Never escapes the scanner."""

    def __init__(self, file: str, message: str, error_type: str = "parse") -> None:
        self.file = file
        self.error_type = error_type
        super().__init__(message)


class CacheCorruptionError(KeycheckError):
    """A cache entry or payload is unreadable. Never escapes the cache."""
