"""
Validation layer.
- ExpressionValidator: shallow checks on calculated column formulas at authoring time.
- QueryStateValidator: dangling references in a query state, checked before SQL generation.
"""

import re
from typing import List, Optional

from schema_catalog.models import DatabaseSchema, ColumnId
from query_state.models import QueryState
from sql_compiler.errors import ExpressionValidationError, StructuralError


def sanitize_alias(alias: str) -> str:
    """Lowercase the alias and replace whitespace runs with underscores."""
    return re.sub(r"\s+", "_", alias.strip()).lower()


class ExpressionValidator:
    """
    Validates a calculated column (alias + expression) before it enters the state.
    Checks, in order:
    1. Alias is not empty
    2. Expression is not empty
    3. Parentheses are balanced
    This is not a SQL parser; balanced-but-invalid SQL is left to the database.
    """

    def check(self, alias: str, expression: str) -> Optional[str]:
        """Return the first failure reason, or None when the formula is acceptable."""
        if not alias or not alias.strip():
            return "Alias is required: give the calculated column a name"

        if not expression or not expression.strip():
            return "Expression is empty: a calculated column needs a formula"

        opened = expression.count("(")
        closed = expression.count(")")
        if opened != closed:
            return f"Unbalanced parentheses: {opened} '(' opened, {closed} ')' closed"

        return None

    def validate(self, alias: str, expression: str) -> None:
        """Raise ExpressionValidationError when the formula is rejected."""
        reason = self.check(alias, expression)
        if reason:
            raise ExpressionValidationError(reason)


class QueryStateValidator:
    """
    Validates a query state against the schema.
    Ensures:
    1. Selected tables exist in the schema
    2. Every column reference belongs to a selected table
    3. Every referenced column exists on its table
    4. Joins connect two different selected tables
    """

    def __init__(self, schema: DatabaseSchema):
        self.schema = schema

    def validate_state(self, state: QueryState) -> List[StructuralError]:
        """
        Collect structural errors.
        Returns an empty list if every reference is valid.
        """
        errors: List[StructuralError] = []

        # 1. Selected tables exist
        for table_id in state.selected_tables:
            if not self.schema.has_table(table_id):
                errors.append(StructuralError(
                    f"Table '{table_id}' is selected but does not exist in schema '{self.schema.name}'",
                    table=str(table_id)
                ))

        # 2-3. Column references
        for column in state.selected_columns:
            self._check_column(state, column, "Selected column", errors)
        for column in state.aggregations:
            self._check_column(state, column, "Aggregated column", errors)
        for filter_cond in state.filters:
            self._check_column(state, filter_cond.column, "Filter column", errors)
        for column in state.group_by:
            self._check_column(state, column, "GROUP BY column", errors)
        for sort in state.order_by:
            self._check_column(state, sort.column, "ORDER BY column", errors)

        # 4. Joins
        for join in state.joins:
            if join.from_table == join.to_table:
                errors.append(StructuralError(
                    f"Join '{join.id}' joins table '{join.from_table}' to itself; self-joins are not supported",
                    table=str(join.from_table)
                ))
                continue
            self._check_column(state, join.from_column_id, "Join column", errors)
            self._check_column(state, join.to_column_id, "Join column", errors)

        return errors

    def _check_column(
        self,
        state: QueryState,
        column: ColumnId,
        context: str,
        errors: List[StructuralError]
    ) -> None:
        table_id = column.table_id
        if not state.is_table_selected(table_id):
            errors.append(StructuralError(
                f"{context} '{column}' references table '{table_id}', which is not selected",
                table=str(table_id),
                column=str(column)
            ))
            return

        table = self.schema.find_table(table_id)
        if table is None:
            # Already reported as a missing selected table
            return

        if not table.has_column(column.name):
            errors.append(StructuralError(
                f"{context} '{column}' does not exist on table '{table_id}'",
                table=str(table_id),
                column=str(column)
            ))

    def is_valid(self, state: QueryState) -> bool:
        return not self.validate_state(state)
