"""
SQL templates for deterministic SQL generation.
Same query state ALWAYS produces the same SQL.
"""

import re
from typing import List, Optional

from schema_catalog.models import TableId, ColumnId
from query_state.models import Filter, Operator, OrderBy, AggregateFunction
from sql_compiler.errors import ConsistencyError


NUMERIC_LITERAL = re.compile(r"^-?\d+(\.\d+)?$")
PARAMETER_NAME = re.compile(r"^:([A-Za-z_][A-Za-z0-9_]*)")

BOOLEAN_TYPES = re.compile(r"bool")
STRING_TYPES = re.compile(r"char|text|string|uuid|date|time|json|xml|inet|enum|bytea")
NUMBER_TYPES = re.compile(r"int|serial|numeric|decimal|real|double|float|money|number")

TRUE_VALUES = ["true", "t", "yes", "y", "1"]
FALSE_VALUES = ["false", "f", "no", "n", "0"]


def classify_column_type(declared_type: Optional[str]) -> str:
    """Map a free-form declared type to number, boolean, string or unknown."""
    declared = (declared_type or "").lower()
    if not declared:
        return "unknown"
    if BOOLEAN_TYPES.search(declared):
        return "boolean"
    if STRING_TYPES.search(declared):
        return "string"
    if NUMBER_TYPES.search(declared):
        return "number"
    return "unknown"


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def is_parameter(value: str) -> bool:
    """':name' values are bound later by the executor and emitted verbatim."""
    return value.startswith(":") and len(value) > 1


def aggregate_alias(column: ColumnId, func: AggregateFunction) -> str:
    """SUM on orders.amount -> amount_sum."""
    return f"{column.name}_{func.value.lower()}"


class FilterSQLBuilder:
    """
    Builds SQL WHERE conditions for filters deterministically.
    """

    @staticmethod
    def build_filter_sql(filter_cond: Filter, column_type: Optional[str] = None) -> str:
        """
        Build SQL condition for a filter.
        The column's declared type decides how ambiguous values are quoted.
        """
        column_ref = str(filter_cond.column)
        operator = filter_cond.operator
        data_type = classify_column_type(column_type)

        if operator.is_unary:
            return f"{column_ref} {operator.value}"

        if operator == Operator.IN:
            values = FilterSQLBuilder.split_in_values(filter_cond.value)
            if not values:
                raise ConsistencyError(
                    f"IN filter on '{column_ref}' has no values: list them separated by commas",
                    column=column_ref
                )
            values_formatted = [FilterSQLBuilder._format_value(v, data_type) for v in values]
            return f"{column_ref} IN ({', '.join(values_formatted)})"

        if operator.is_pattern:
            # Patterns are text even when they look like numbers
            value = filter_cond.value
            value_formatted = value if is_parameter(value) else quote_literal(value)
            return f"{column_ref} {operator.value} {value_formatted}"

        value_formatted = FilterSQLBuilder._format_value(filter_cond.value, data_type)
        return f"{column_ref} {operator.value} {value_formatted}"

    @staticmethod
    def split_in_values(value: str) -> List[str]:
        return [part.strip() for part in value.split(",") if part.strip()]

    @staticmethod
    def _format_value(value: str, data_type: str) -> str:
        """Format value for SQL based on data type."""
        if is_parameter(value):
            return value

        if data_type == "boolean":
            if value.lower() in TRUE_VALUES:
                return "TRUE"
            elif value.lower() in FALSE_VALUES:
                return "FALSE"
            return quote_literal(value)

        if data_type == "string":
            return quote_literal(value)

        # number or unknown: numeric-looking values pass through
        if NUMERIC_LITERAL.match(value):
            return value
        return quote_literal(value)

    @staticmethod
    def parameter_names(filters: List[Filter]) -> List[str]:
        """Named parameters referenced by the filters, in order of appearance."""
        names: List[str] = []
        for filter_cond in filters:
            if filter_cond.operator.is_unary:
                continue
            candidates = [filter_cond.value]
            if filter_cond.operator == Operator.IN:
                candidates = FilterSQLBuilder.split_in_values(filter_cond.value)
            for candidate in candidates:
                match = PARAMETER_NAME.match(candidate)
                if match and match.group(1) not in names:
                    names.append(match.group(1))
        return names


class SQLTemplates:
    """
    Collection of SQL clause templates.
    All templates are deterministic - same inputs produce same SQL.
    """

    @staticmethod
    def build_select_clause(select_parts: List[str]) -> str:
        return f"SELECT {', '.join(select_parts)}"

    @staticmethod
    def build_column_expression(column: ColumnId, func: AggregateFunction, alias: Optional[str] = None) -> str:
        """Plain column reference, or FUNC(column) AS alias."""
        if func == AggregateFunction.NONE:
            return str(column)
        return f"{func.value}({column}) AS {alias or aggregate_alias(column, func)}"

    @staticmethod
    def build_calculated_expression(expression: str, alias: str) -> str:
        return f"({expression}) AS {alias}"

    @staticmethod
    def build_from_item(root_table: TableId, join_parts: List[str]) -> str:
        """A table followed by the JOIN clauses hanging off it."""
        return " ".join([str(root_table)] + join_parts)

    @staticmethod
    def build_from_clause(from_items: List[str]) -> str:
        """The first item holds the base table; further items are comma (cross) joins."""
        return f"FROM {', '.join(from_items)}"

    @staticmethod
    def build_join_clause(join_type: str, table_id: TableId, conditions: List[str]) -> str:
        return f"{join_type} JOIN {table_id} ON {' AND '.join(conditions)}"

    @staticmethod
    def build_where_clause(where_conditions: List[str]) -> str:
        """Filters are always conjunctive."""
        if not where_conditions:
            return ""
        return f"WHERE {' AND '.join(where_conditions)}"

    @staticmethod
    def build_group_by_clause(columns: List[ColumnId]) -> str:
        if not columns:
            return ""
        return f"GROUP BY {', '.join(str(c) for c in columns)}"

    @staticmethod
    def build_order_by_clause(order_by: List[OrderBy]) -> str:
        if not order_by:
            return ""
        return f"ORDER BY {', '.join(f'{o.column} {o.direction.value}' for o in order_by)}"

    @staticmethod
    def build_limit_clause(limit: Optional[int]) -> str:
        """Only positive limits are emitted."""
        if not limit or limit <= 0:
            return ""
        return f"LIMIT {limit}"

    @staticmethod
    def assemble_full_sql(
        select_clause: str,
        from_clause: str,
        where_clause: str,
        group_by_clause: str,
        order_by_clause: str,
        limit_clause: str
    ) -> str:
        """Assemble complete SQL query deterministically."""
        parts = [
            select_clause,
            from_clause,
            where_clause,
            group_by_clause,
            order_by_clause,
            limit_clause
        ]

        # Filter out empty parts and join with spaces
        return " ".join(p for p in parts if p)
