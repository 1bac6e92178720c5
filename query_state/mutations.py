"""
Query state transitions.
The only legal way to reach a new QueryState: every function takes the current
state and returns a new one that satisfies the structural invariants.
Aggregate/GROUP BY consistency is left to the compiler.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Union

from config import APP_CONFIG
from schema_catalog.models import DatabaseSchema, TableId, ColumnId
from query_state.models import (
    QueryState,
    ExplicitJoin,
    Filter,
    OrderBy,
    CalculatedColumn,
    AggregateFunction,
    Operator,
    SortDirection,
    new_id
)
from sql_compiler.errors import StructuralError, ExpressionValidationError
from sql_compiler.validator import ExpressionValidator, sanitize_alias


logger = logging.getLogger(__name__)

TableRef = Union[TableId, str]
ColumnRef = Union[ColumnId, str]


def create_empty_state(limit: Optional[int] = None) -> QueryState:
    """Empty state for a freshly loaded schema."""
    return QueryState(limit=APP_CONFIG["default_limit"] if limit is None else limit)


def _require_selected(state: QueryState, table_id: TableId, context: str) -> None:
    if not state.is_table_selected(table_id):
        raise StructuralError(
            f"{context} references table '{table_id}', which is not selected",
            table=str(table_id)
        )


def _with_table(state: QueryState, table_id: TableId) -> QueryState:
    if state.is_table_selected(table_id):
        return state
    return state.model_copy(update={"selected_tables": state.selected_tables + (table_id,)})


# ----------------------------------------------------------------------
# Tables
# ----------------------------------------------------------------------

def add_table(state: QueryState, table: TableRef) -> QueryState:
    """Append a table to the selection (no-op if already selected)."""
    return _with_table(state, TableId.parse(table))


def remove_table(state: QueryState, table: TableRef) -> QueryState:
    """
    Remove a table and everything that references it:
    selected columns, aggregations, GROUP BY, ORDER BY, joins and filters.
    """
    table_id = TableId.parse(table)
    if not state.is_table_selected(table_id):
        return state

    def keep(column: ColumnId) -> bool:
        return not column.belongs_to(table_id)

    return state.model_copy(update={
        "selected_tables": tuple(t for t in state.selected_tables if t != table_id),
        "selected_columns": tuple(c for c in state.selected_columns if keep(c)),
        "aggregations": {c: func for c, func in state.aggregations.items() if keep(c)},
        "joins": tuple(j for j in state.joins if not j.mentions(table_id)),
        "filters": tuple(f for f in state.filters if keep(f.column)),
        "group_by": tuple(c for c in state.group_by if keep(c)),
        "order_by": tuple(o for o in state.order_by if keep(o.column)),
    })


def toggle_table(state: QueryState, table: TableRef) -> QueryState:
    table_id = TableId.parse(table)
    if state.is_table_selected(table_id):
        return remove_table(state, table_id)
    return add_table(state, table_id)


def clear_all_tables(state: QueryState) -> QueryState:
    """Drop the whole selection, keeping only the row limit."""
    return QueryState(limit=state.limit)


# ----------------------------------------------------------------------
# Columns and aggregations
# ----------------------------------------------------------------------

def toggle_column(state: QueryState, column: ColumnRef) -> QueryState:
    """
    Select a column (adding its table if needed) or deselect it.
    Deselecting also drops its aggregation.
    """
    column_id = ColumnId.parse(column)

    if state.is_column_selected(column_id):
        aggregations = dict(state.aggregations)
        aggregations.pop(column_id, None)
        return state.model_copy(update={
            "selected_columns": tuple(c for c in state.selected_columns if c != column_id),
            "aggregations": aggregations,
        })

    state = _with_table(state, column_id.table_id)
    return state.model_copy(update={"selected_columns": state.selected_columns + (column_id,)})


def select_all_columns(state: QueryState, table: TableRef, column_names: Iterable[str]) -> QueryState:
    table_id = TableId.parse(table)
    state = _with_table(state, table_id)
    columns = list(state.selected_columns)
    for name in column_names:
        column_id = table_id.column(name)
        if column_id not in columns:
            columns.append(column_id)
    return state.model_copy(update={"selected_columns": tuple(columns)})


def select_no_columns(state: QueryState, table: TableRef, column_names: Iterable[str]) -> QueryState:
    table_id = TableId.parse(table)
    removed = {table_id.column(name) for name in column_names}
    return state.model_copy(update={
        "selected_columns": tuple(c for c in state.selected_columns if c not in removed),
        "aggregations": {c: func for c, func in state.aggregations.items() if c not in removed},
    })


def set_aggregation(
    state: QueryState,
    column: ColumnRef,
    func: Union[AggregateFunction, str]
) -> QueryState:
    """
    NONE removes the aggregation; any other function sets it and
    implicitly selects the column (and its table).
    """
    column_id = ColumnId.parse(column)
    func = AggregateFunction(func)
    aggregations = dict(state.aggregations)

    if func == AggregateFunction.NONE:
        aggregations.pop(column_id, None)
        return state.model_copy(update={"aggregations": aggregations})

    aggregations[column_id] = func
    state = _with_table(state, column_id.table_id)
    columns = state.selected_columns
    if column_id not in columns:
        columns = columns + (column_id,)
    return state.model_copy(update={"selected_columns": columns, "aggregations": aggregations})


# ----------------------------------------------------------------------
# Joins
# ----------------------------------------------------------------------

def _check_join(state: QueryState, join: ExplicitJoin) -> None:
    if join.from_table == join.to_table:
        raise StructuralError(
            f"Cannot join table '{join.from_table}' to itself",
            table=str(join.from_table)
        )
    _require_selected(state, join.from_table, "Join")
    _require_selected(state, join.to_table, "Join")


def add_join(state: QueryState, join: ExplicitJoin) -> QueryState:
    """Append a join; adding a join whose id is already present is a no-op."""
    if any(existing.id == join.id for existing in state.joins):
        return state
    _check_join(state, join)
    return state.model_copy(update={"joins": state.joins + (join,)})


def update_join(state: QueryState, join_id: str, **changes: Any) -> QueryState:
    """Change fields of an existing join (from_table, from_column, type, to_table, to_column)."""
    joins = list(state.joins)
    for index, existing in enumerate(joins):
        if existing.id == join_id:
            updated = ExplicitJoin.model_validate({**existing.model_dump(), **changes, "id": join_id})
            _check_join(state, updated)
            joins[index] = updated
            return state.model_copy(update={"joins": tuple(joins)})
    raise KeyError(join_id)


def remove_join(state: QueryState, join_id: str) -> QueryState:
    return state.model_copy(update={"joins": tuple(j for j in state.joins if j.id != join_id)})


# ----------------------------------------------------------------------
# Filters
# ----------------------------------------------------------------------

def add_filter(
    state: QueryState,
    column: ColumnRef,
    operator: Union[Operator, str] = Operator.EQUALS,
    value: str = "",
    filter_id: Optional[str] = None
) -> QueryState:
    filter_cond = Filter(
        id=filter_id or new_id(),
        column=ColumnId.parse(column),
        operator=Operator(operator),
        value=value
    )
    _require_selected(state, filter_cond.column.table_id, "Filter")
    return state.model_copy(update={"filters": state.filters + (filter_cond,)})


def update_filter(state: QueryState, filter_id: str, **changes: Any) -> QueryState:
    """Change column, operator or value of an existing filter."""
    filters = list(state.filters)
    for index, existing in enumerate(filters):
        if existing.id == filter_id:
            updated = Filter.model_validate({**existing.model_dump(), **changes, "id": filter_id})
            _require_selected(state, updated.column.table_id, "Filter")
            filters[index] = updated
            return state.model_copy(update={"filters": tuple(filters)})
    raise KeyError(filter_id)


def remove_filter(state: QueryState, filter_id: str) -> QueryState:
    return state.model_copy(update={"filters": tuple(f for f in state.filters if f.id != filter_id)})


# ----------------------------------------------------------------------
# Grouping and ordering
# ----------------------------------------------------------------------

def toggle_group_by(state: QueryState, column: ColumnRef) -> QueryState:
    column_id = ColumnId.parse(column)
    if column_id in state.group_by:
        return state.model_copy(update={"group_by": tuple(c for c in state.group_by if c != column_id)})
    _require_selected(state, column_id.table_id, "GROUP BY")
    return state.model_copy(update={"group_by": state.group_by + (column_id,)})


def add_sort(
    state: QueryState,
    column: ColumnRef,
    direction: Union[SortDirection, str] = SortDirection.ASC,
    sort_id: Optional[str] = None
) -> QueryState:
    sort = OrderBy(id=sort_id or new_id(), column=ColumnId.parse(column), direction=SortDirection(direction))
    _require_selected(state, sort.column.table_id, "ORDER BY")
    return state.model_copy(update={"order_by": state.order_by + (sort,)})


def update_sort(state: QueryState, sort_id: str, **changes: Any) -> QueryState:
    order_by = list(state.order_by)
    for index, existing in enumerate(order_by):
        if existing.id == sort_id:
            updated = OrderBy.model_validate({**existing.model_dump(), **changes, "id": sort_id})
            _require_selected(state, updated.column.table_id, "ORDER BY")
            order_by[index] = updated
            return state.model_copy(update={"order_by": tuple(order_by)})
    raise KeyError(sort_id)


def remove_sort(state: QueryState, sort_id: str) -> QueryState:
    return state.model_copy(update={"order_by": tuple(o for o in state.order_by if o.id != sort_id)})


# ----------------------------------------------------------------------
# Calculated columns and limit
# ----------------------------------------------------------------------

def add_calculated_column(
    state: QueryState,
    alias: str,
    expression: str,
    column_id: Optional[str] = None
) -> QueryState:
    """
    Validate the formula, sanitize its alias and append it.
    Raises ExpressionValidationError for empty/unbalanced formulas or a taken alias.
    """
    ExpressionValidator().validate(alias, expression)
    alias = sanitize_alias(alias)

    if any(existing.alias == alias for existing in state.calculated_columns):
        raise ExpressionValidationError(f"Alias '{alias}' is already used by another calculated column")

    calculated = CalculatedColumn(id=column_id or new_id(), alias=alias, expression=expression.strip())
    return state.model_copy(update={"calculated_columns": state.calculated_columns + (calculated,)})


def remove_calculated_column(state: QueryState, column_id: str) -> QueryState:
    return state.model_copy(update={
        "calculated_columns": tuple(c for c in state.calculated_columns if c.id != column_id)
    })


def set_limit(state: QueryState, limit: int) -> QueryState:
    """Store the row cap; non-positive values are only rejected by strict generation."""
    return state.model_copy(update={"limit": int(limit)})


# ----------------------------------------------------------------------
# Externally generated fragments ("Magic Fill")
# ----------------------------------------------------------------------

def apply_state_fragment(
    state: QueryState,
    fragment: Dict[str, Any],
    schema: Optional[DatabaseSchema] = None
) -> QueryState:
    """
    Merge a candidate state document (e.g. produced from a natural language prompt)
    over the current state and replay it through the transitions above.
    Entries that would break an invariant are dropped with a warning, never trusted.
    When a schema is given, tables and columns it does not know are dropped too.
    """
    document = {**state.to_document(), **fragment}
    result = create_empty_state(limit=state.limit)

    def known_table(table_id: TableId) -> bool:
        return schema is None or schema.has_table(table_id)

    def known_column(column_id: ColumnId) -> bool:
        return schema is None or schema.find_column(column_id) is not None

    def drop(kind: str, entry: Any, reason: Any) -> None:
        logger.warning(f"Dropping {kind} {entry!r} from state fragment: {reason}")

    for raw in document.get("selectedTables") or []:
        try:
            table_id = TableId.parse(raw)
        except ValueError as e:
            drop("table", raw, e)
            continue
        if not known_table(table_id):
            drop("table", raw, "not in schema")
            continue
        result = add_table(result, table_id)

    for raw in document.get("selectedColumns") or []:
        try:
            column_id = ColumnId.parse(raw)
        except ValueError as e:
            drop("column", raw, e)
            continue
        if not known_column(column_id):
            drop("column", raw, "not in schema")
            continue
        if not result.is_column_selected(column_id):
            result = toggle_column(result, column_id)

    for raw, func in (document.get("aggregations") or {}).items():
        try:
            column_id = ColumnId.parse(raw)
            if not known_column(column_id):
                raise ValueError("not in schema")
            result = set_aggregation(result, column_id, func)
        except ValueError as e:
            drop("aggregation", raw, e)

    for raw in document.get("joins") or []:
        try:
            join = ExplicitJoin.model_validate(raw)
            if not (known_column(join.from_column_id) and known_column(join.to_column_id)):
                raise ValueError("not in schema")
            result = add_join(result, join)
        except (ValueError, StructuralError) as e:
            drop("join", raw, e)

    for raw in document.get("filters") or []:
        try:
            filter_cond = Filter.model_validate(raw)
            if not known_column(filter_cond.column):
                raise ValueError("not in schema")
            result = add_filter(result, filter_cond.column, filter_cond.operator, filter_cond.value, filter_cond.id)
        except (ValueError, StructuralError) as e:
            drop("filter", raw, e)

    for raw in document.get("groupBy") or []:
        try:
            column_id = ColumnId.parse(raw)
            if not known_column(column_id):
                raise ValueError("not in schema")
            if column_id not in result.group_by:
                result = toggle_group_by(result, column_id)
        except (ValueError, StructuralError) as e:
            drop("group by", raw, e)

    for raw in document.get("orderBy") or []:
        try:
            sort = OrderBy.model_validate(raw)
            if not known_column(sort.column):
                raise ValueError("not in schema")
            result = add_sort(result, sort.column, sort.direction, sort.id)
        except (ValueError, StructuralError) as e:
            drop("order by", raw, e)

    for raw in document.get("calculatedColumns") or []:
        try:
            calculated = CalculatedColumn.model_validate(raw)
            result = add_calculated_column(result, calculated.alias, calculated.expression, calculated.id)
        except (ValueError, ExpressionValidationError) as e:
            drop("calculated column", raw, e)

    limit = document.get("limit")
    if isinstance(limit, int) and not isinstance(limit, bool):
        result = set_limit(result, limit)

    return result
