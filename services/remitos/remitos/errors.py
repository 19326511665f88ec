"""Error taxonomy shared by the remitos server and client."""

from __future__ import annotations

from typing import Any, List, Optional


class RemitosError(Exception):
    """Base error for remitos operations."""


class ConfigLoadError(RemitosError):
    """Raised when a table configuration document cannot be fetched or parsed."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class SaveConfigError(RemitosError):
    """Raised when the specific configuration cannot be persisted."""


class InvalidColumnError(RemitosError):
    """Raised when a column or filter field is not a plain SQL identifier."""

    def __init__(self, column: str, message: Optional[str] = None):
        super().__init__(message or f"Invalid column name: {column!r}")
        self.column = column


class UnsupportedOperatorError(RemitosError):
    """Raised when a filter descriptor carries an unknown operator."""

    def __init__(self, operator: str):
        super().__init__(f"Unsupported filter operator: {operator!r}")
        self.operator = operator


class InvalidPageError(RemitosError):
    """Raised for a page number or page size below 1."""


class FetchError(RemitosError):
    """Raised when a GraphQL or HTTP request from the client fails."""

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.errors = errors or []


class ReportUnavailableError(RemitosError):
    """Raised when the upstream report generator cannot produce a PDF."""
