"""
Error taxonomy for query composition and compilation.
Every error names the specific rule that was broken so callers can show it as-is.
"""

from typing import Optional


class QueryComposerError(Exception):
    """Base class for all query composer errors."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        column: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.table = table
        self.column = column

    @property
    def error_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        """Serialize for API responses."""
        payload = {"error": self.error_type, "message": self.message}
        if self.table:
            payload["table"] = self.table
        if self.column:
            payload["column"] = self.column
        return payload


class CompilationError(QueryComposerError):
    """Raised when a query state cannot be rendered to SQL."""


class StructuralError(CompilationError):
    """A reference points to a table or column that is not selected or does not exist."""


class ConsistencyError(CompilationError):
    """References are well-formed but violate a query rule (grouping, joins, limit)."""


class EmptySelectionError(CompilationError):
    """No table is selected, so there is no base table to query."""

    def __init__(self, message: str = "No table selected: choose at least one table to build a query"):
        super().__init__(message)


class ExpressionValidationError(QueryComposerError):
    """A calculated column formula was rejected at authoring time."""
