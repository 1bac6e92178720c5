"""
Relationship inference.
Proposes how two tables join: foreign key metadata first, a naming heuristic last.
The result is advisory only - accepting it is an ordinary "add join" mutation.
"""

import uuid
import logging
from typing import Optional, Union

from schema_catalog.models import DatabaseSchema, Table, TableId
from query_state.models import QueryState, ExplicitJoin, JoinType


logger = logging.getLogger(__name__)

TableRef = Union[TableId, str]


def _join_id(from_table: TableId, from_column: str, to_table: TableId, to_column: str) -> str:
    # Name-based so the same pair of tables always yields an equal join
    key = f"join:{from_table}.{from_column}->{to_table}.{to_column}"
    return str(uuid.uuid5(uuid.NAMESPACE_URL, key))


def _build_join(
    from_table: TableId,
    from_column: str,
    join_type: JoinType,
    to_table: TableId,
    to_column: str
) -> ExplicitJoin:
    return ExplicitJoin(
        id=_join_id(from_table, from_column, to_table, to_column),
        from_table=from_table,
        from_column=from_column,
        type=join_type,
        to_table=to_table,
        to_column=to_column
    )


def _foreign_key_join(source: Table, target: Table) -> Optional[ExplicitJoin]:
    """
    LEFT join from a foreign key on `source` pointing at `target`.
    A schema-qualified reference wins over a legacy table-name-only one.
    """
    legacy_match = None

    for column in source.columns:
        reference = column.foreign_key_target()
        if reference is None or not reference.points_to(target.table_id):
            continue
        if reference.schema_name is not None:
            return _build_join(source.table_id, column.name, JoinType.LEFT, target.table_id, reference.column_name)
        if legacy_match is None:
            legacy_match = (column.name, reference.column_name)

    if legacy_match:
        fk_column, referenced_column = legacy_match
        return _build_join(source.table_id, fk_column, JoinType.LEFT, target.table_id, referenced_column)

    return None


def _shared_key_join(table_a: Table, table_b: Table) -> Optional[ExplicitJoin]:
    """
    Same table replicated across schemas (e.g. sales.orders / archive.orders).
    Requires an exact name collision plus one key column with equal name and type.
    """
    if table_a.name != table_b.name or table_a.schema_name == table_b.schema_name:
        return None

    for column in table_a.columns:
        if column.name.lower() != "id" and not column.is_primary_key:
            continue
        counterpart = table_b.get_column(column.name)
        if counterpart is not None and counterpart.type == column.type:
            return _build_join(table_a.table_id, column.name, JoinType.INNER, table_b.table_id, column.name)

    return None


def _resolve(schema: DatabaseSchema, table: TableRef) -> Optional[Table]:
    if isinstance(table, str):
        try:
            table = TableId.parse(table)
        except ValueError:
            return None
    return schema.find_table(table)


def infer_join(
    schema: DatabaseSchema,
    table_a: TableRef,
    table_b: TableRef,
    cross_schema_heuristic: bool = True
) -> Optional[ExplicitJoin]:
    """
    Propose at most one join between two tables. First match wins:
    1. A has a foreign key to B
    2. B has a foreign key to A
    3. Same table name in different schemas sharing a key column (INNER)
    Returns None when nothing matches or a table is unknown.
    """
    first = _resolve(schema, table_a)
    second = _resolve(schema, table_b)
    if first is None or second is None or first.table_id == second.table_id:
        return None

    join = _foreign_key_join(first, second) or _foreign_key_join(second, first)
    if join is None and cross_schema_heuristic:
        join = _shared_key_join(first, second)
    return join


def suggest_join(
    schema: DatabaseSchema,
    state: QueryState,
    new_table: TableRef,
    cross_schema_heuristic: bool = True
) -> Optional[ExplicitJoin]:
    """
    Suggest how a newly added table connects to the current selection.
    Already-selected tables are tried in selection order, each from both sides
    (the shared-key heuristic only looks at the first table's keys);
    the first relationship found wins.
    """
    new_table_id = TableId.parse(new_table)

    for existing in state.selected_tables:
        if existing == new_table_id:
            continue
        join = (
            infer_join(schema, existing, new_table_id, cross_schema_heuristic)
            or infer_join(schema, new_table_id, existing, cross_schema_heuristic)
        )
        if join is not None:
            return join

    return None


class RelationshipInferenceEngine:
    """
    Join inference bound to one schema.
    Pure: the same inputs always produce the same suggestion.
    """

    def __init__(self, schema: DatabaseSchema, cross_schema_heuristic: bool = True):
        self.schema = schema
        self.cross_schema_heuristic = cross_schema_heuristic

    def infer_join(self, table_a: TableRef, table_b: TableRef) -> Optional[ExplicitJoin]:
        join = infer_join(self.schema, table_a, table_b, self.cross_schema_heuristic)
        if join is None:
            logger.debug(f"No relationship found between {table_a} and {table_b}")
        else:
            logger.debug(
                f"Inferred {join.type.value} join {join.from_table}.{join.from_column} = "
                f"{join.to_table}.{join.to_column}"
            )
        return join

    def suggest_join(self, state: QueryState, new_table: TableRef) -> Optional[ExplicitJoin]:
        return suggest_join(self.schema, state, new_table, self.cross_schema_heuristic)
