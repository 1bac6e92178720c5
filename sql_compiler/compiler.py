# sql_compiler/compiler.py - query state -> SQL

import logging
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from config import APP_CONFIG
from schema_catalog.models import DatabaseSchema, TableId, ColumnId
from query_state.models import QueryState, ExplicitJoin, AggregateFunction
from sql_compiler.errors import CompilationError, ConsistencyError, EmptySelectionError
from sql_compiler.templates import SQLTemplates, FilterSQLBuilder, aggregate_alias
from sql_compiler.validator import QueryStateValidator


logger = logging.getLogger(__name__)


class CompiledQuery(BaseModel):
    """Result of a successful compilation."""
    sql: str = Field(..., description="Generated SQL text")
    warnings: List[str] = Field(default_factory=list, description="Non-fatal consistency problems")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AliasRegistry:
    """
    Hands out unique output names for aggregated columns.
    SUM(orders.amount) -> amount_sum, then orders_amount_sum, orders_amount_sum_1, ...
    """

    def __init__(self, reserved: Optional[List[str]] = None):
        self.used_aliases: Set[str] = set(reserved or [])

    def get_alias(self, column: ColumnId, func: AggregateFunction) -> str:
        base_alias = aggregate_alias(column, func)
        if base_alias not in self.used_aliases:
            self.used_aliases.add(base_alias)
            return base_alias

        qualified = f"{column.table_id.table_name}_{base_alias}"
        counter = 0
        while True:
            alias = f"{qualified}_{counter}" if counter > 0 else qualified
            if alias not in self.used_aliases:
                self.used_aliases.add(alias)
                return alias
            counter += 1


class _FromGroup:
    """A FROM item: a root table and the JOIN clauses that hang off it."""

    def __init__(self, root: TableId):
        self.root = root
        self.tables: List[TableId] = [root]
        self.clauses: List[Dict[str, Any]] = []
        self.introduced_by: Dict[TableId, int] = {}
        self.warnings: List[str] = []

    def contains(self, table_id: TableId) -> bool:
        return table_id in self.tables

    def attach(self, join: ExplicitJoin) -> bool:
        """
        Add a join if one of its tables is already here.
        The join is flipped (LEFT <-> RIGHT) when only its from-table is new.
        A join between tables already here folds into the existing clause and keeps its type.
        """
        condition = (
            f"{join.from_table}.{join.from_column} = "
            f"{join.to_table}.{join.to_column}"
        )
        has_from = self.contains(join.from_table)
        has_to = self.contains(join.to_table)

        if has_from and has_to:
            # Extra key column for tables already joined
            index = max(self.introduced_by.get(join.from_table, -1), self.introduced_by.get(join.to_table, -1))
            clause = self.clauses[index]
            clause["conditions"].append(condition)
            join_type = join.type if clause["table"] == join.to_table else join.type.mirrored()
            if join_type.value != clause["type"]:
                self.warnings.append(ConsistencyError(
                    f"Join {join.from_table}.{join.from_column} = {join.to_table}.{join.to_column} "
                    f"is {join_type.value} but shares a clause with a {clause['type']} join; "
                    f"keeping {clause['type']} JOIN {clause['table']}",
                    table=str(clause["table"])
                ).message)
            return True

        if has_from:
            self._introduce(join.to_table, join.type.value, condition)
            return True

        if has_to:
            self._introduce(join.from_table, join.type.mirrored().value, condition)
            return True

        return False

    def _introduce(self, table_id: TableId, join_type: str, condition: str) -> None:
        self.introduced_by[table_id] = len(self.clauses)
        self.tables.append(table_id)
        self.clauses.append({"type": join_type, "table": table_id, "conditions": [condition]})


class SQLCompiler:
    """
    Pure function of (schema, query state) -> SQL.
    Re-run in full on every state change; no incremental patching.
    """

    def __init__(self, schema: DatabaseSchema):
        self.schema = schema
        self.templates = SQLTemplates()
        self.filter_builder = FilterSQLBuilder()
        self.state_validator = QueryStateValidator(schema)

    def compile_sql(self, state: QueryState) -> CompiledQuery:
        """
        Compile a query state to SQL.
        Raises EmptySelectionError, StructuralError or ConsistencyError.
        Unjoined tables are reported in `warnings` instead of failing.
        """
        if not state.selected_tables:
            raise EmptySelectionError()

        structural_errors = self.state_validator.validate_state(state)
        if structural_errors:
            raise structural_errors[0]

        self._check_calculated_aliases(state)

        # SELECT (also enforces the GROUP BY rule)
        select_parts = self._build_select_parts(state)

        # FROM / JOIN
        groups = self._build_from_groups(state)
        warnings = [w for group in groups for w in group.warnings]
        warnings += self._unjoined_warnings(state, groups)
        from_items = [
            self.templates.build_from_item(
                group.root,
                [
                    self.templates.build_join_clause(c["type"], c["table"], c["conditions"])
                    for c in group.clauses
                ]
            )
            for group in groups
        ]

        # WHERE
        where_conditions = [
            self.filter_builder.build_filter_sql(f, self._column_type(f.column))
            for f in state.filters
        ]

        sql = self.templates.assemble_full_sql(
            select_clause=self.templates.build_select_clause(select_parts),
            from_clause=self.templates.build_from_clause(from_items),
            where_clause=self.templates.build_where_clause(where_conditions),
            group_by_clause=self.templates.build_group_by_clause(list(state.group_by)),
            order_by_clause=self.templates.build_order_by_clause(list(state.order_by)),
            limit_clause=self.templates.build_limit_clause(state.limit)
        )

        for warning in warnings:
            logger.warning(warning)
        logger.debug(f"Generated SQL: {sql}")

        emitted_tables = [str(t) for group in groups for t in group.tables]
        return CompiledQuery(
            sql=sql,
            warnings=warnings,
            metadata={
                "base_table": str(state.base_table),
                "tables": emitted_tables,
                "join_count": sum(len(group.clauses) for group in groups),
                "unjoined_tables": [str(group.root) for group in groups[1:]],
                "grouped": state.is_grouped,
                "parameters": self.filter_builder.parameter_names(list(state.filters)),
            }
        )

    def generate_sql(self, state: QueryState) -> CompiledQuery:
        """
        Strict compilation for an explicit "generate/run" action.
        Errors propagate; a non-positive limit is rejected as well.
        """
        compiled = self.compile_sql(state)
        if state.limit <= 0:
            raise ConsistencyError(f"Row limit must be a positive integer, got {state.limit}")
        return compiled

    def preview_sql(self, state: QueryState) -> str:
        """
        Permissive compilation for live preview. Never raises a compilation error:
        problems are rendered as SQL comments so there is always something to show.
        """
        prefix = APP_CONFIG["preview_error_prefix"]
        try:
            compiled = self.compile_sql(state)
        except CompilationError as e:
            logger.debug(f"Preview compilation failed: {e.error_type}: {e.message}")
            return f"{prefix} {e.error_type}: {e.message}"

        lines = [compiled.sql] + [f"{prefix} warning: {w}" for w in compiled.warnings]
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # SELECT
    # ------------------------------------------------------------------

    def _build_select_parts(self, state: QueryState) -> List[str]:
        calculated = list(state.calculated_columns)

        # Baseline: whole rows of every selected table
        if not state.selected_columns and not state.is_grouped and not calculated:
            return [f"{table_id}.*" for table_id in state.selected_tables]

        if state.selected_columns:
            columns = state.effective_columns()
            plain = [c for c in state.selected_columns if state.aggregation_for(c) == AggregateFunction.NONE]
        else:
            # Nothing picked explicitly: every column is implicitly selected
            plain = self._implicit_columns(state) if state.is_grouped else []
            columns = plain + list(state.aggregations)

        if state.is_grouped:
            self._check_grouping(state, plain)

        aliases = AliasRegistry(reserved=[c.alias for c in calculated])
        select_parts = []
        for column in columns:
            func = state.aggregation_for(column)
            alias = aliases.get_alias(column, func) if func != AggregateFunction.NONE else None
            select_parts.append(self.templates.build_column_expression(column, func, alias))

        for calc in calculated:
            select_parts.append(self.templates.build_calculated_expression(calc.expression, calc.alias))

        return select_parts

    def _implicit_columns(self, state: QueryState) -> List[ColumnId]:
        columns = []
        for table_id in state.selected_tables:
            table = self.schema.get_table(table_id)
            for column in table.columns:
                column_id = table_id.column(column.name)
                if state.aggregation_for(column_id) == AggregateFunction.NONE:
                    columns.append(column_id)
        return columns

    def _check_grouping(self, state: QueryState, plain_columns: List[ColumnId]) -> None:
        """Every non-aggregated selected column must be grouped."""
        grouped = set(state.group_by)
        for column in plain_columns:
            if column not in grouped:
                raise ConsistencyError(
                    f"Column '{column}' must appear in GROUP BY or be used in an aggregate function",
                    table=str(column.table_id),
                    column=str(column)
                )

    def _check_calculated_aliases(self, state: QueryState) -> None:
        seen = set()
        for calc in state.calculated_columns:
            if not calc.alias.strip():
                raise ConsistencyError(f"Calculated column '{calc.id}' has an empty alias")
            if calc.alias in seen:
                raise ConsistencyError(f"Calculated column alias '{calc.alias}' is used more than once")
            seen.add(calc.alias)

    # ------------------------------------------------------------------
    # FROM / JOIN
    # ------------------------------------------------------------------

    def _build_from_groups(self, state: QueryState) -> List[_FromGroup]:
        """
        Attach joins to the base table in the order they were added.
        Joins that cannot attach yet are retried once others have landed;
        joins never reaching the base table form their own comma-joined group.
        """
        groups = [_FromGroup(state.base_table)]
        pending = list(state.joins)

        while pending:
            group = groups[-1]
            progress = True
            while pending and progress:
                progress = False
                remaining = []
                for join in pending:
                    if group.attach(join):
                        progress = True
                    else:
                        remaining.append(join)
                pending = remaining

            if pending:
                groups.append(_FromGroup(pending[0].from_table))

        # Selected tables no join mentions
        for table_id in state.selected_tables:
            if not any(group.contains(table_id) for group in groups):
                groups.append(_FromGroup(table_id))

        return groups

    def _unjoined_warnings(self, state: QueryState, groups: List[_FromGroup]) -> List[str]:
        warnings = []
        for group in groups[1:]:
            tables = ", ".join(f"'{t}'" for t in group.tables)
            warning = ConsistencyError(
                f"Table {tables} is not joined to base table '{state.base_table}'; "
                f"it is cross joined (every row combined with every row)",
                table=str(group.root)
            )
            warnings.append(warning.message)
        return warnings

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _column_type(self, column_id: ColumnId) -> Optional[str]:
        column = self.schema.find_column(column_id)
        return column.type if column else None
