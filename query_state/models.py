"""
Pydantic models for the query state document.
The UI edits this document through the mutation layer; the compiler renders it.
Persisted verbatim by external collaborators (saved queries, history).
"""

import uuid
from typing import Dict, List, Optional, Tuple, Any
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from schema_catalog.models import TableId, ColumnId


DEFAULT_LIMIT = 100


def new_id() -> str:
    """Random id for joins, filters, sorts and calculated columns."""
    return str(uuid.uuid4())


class AggregateFunction(str, Enum):
    """Aggregate applied to a selected column."""
    NONE = "NONE"
    COUNT = "COUNT"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"


class Operator(str, Enum):
    """Supported WHERE operators."""
    EQUALS = "="
    NOT_EQUALS = "!="
    GREATER_THAN = ">"
    LESS_THAN = "<"
    GREATER_THAN_OR_EQUAL = ">="
    LESS_THAN_OR_EQUAL = "<="
    LIKE = "LIKE"
    ILIKE = "ILIKE"
    IN = "IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"

    @property
    def is_unary(self) -> bool:
        return self in (Operator.IS_NULL, Operator.IS_NOT_NULL)

    @property
    def is_pattern(self) -> bool:
        return self in (Operator.LIKE, Operator.ILIKE)


class JoinType(str, Enum):
    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    FULL = "FULL"

    def mirrored(self) -> "JoinType":
        """Join type that keeps the same rows when both sides swap places."""
        if self == JoinType.LEFT:
            return JoinType.RIGHT
        if self == JoinType.RIGHT:
            return JoinType.LEFT
        return self


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


# Documents use camelCase keys (selectedTables, fromColumn, ...)
DOCUMENT_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class ExplicitJoin(BaseModel):
    """A join the user added or accepted: <type> JOIN to_table ON from = to."""
    model_config = DOCUMENT_CONFIG

    id: str = Field(default_factory=new_id)
    from_table: TableId
    from_column: str
    type: JoinType = Field(JoinType.INNER, description="Join type")
    to_table: TableId
    to_column: str

    @property
    def from_column_id(self) -> ColumnId:
        return self.from_table.column(self.from_column)

    @property
    def to_column_id(self) -> ColumnId:
        return self.to_table.column(self.to_column)

    def mentions(self, table_id: TableId) -> bool:
        return self.from_table == table_id or self.to_table == table_id


class Filter(BaseModel):
    """WHERE condition; `value` is ignored for IS NULL / IS NOT NULL."""
    model_config = DOCUMENT_CONFIG

    id: str = Field(default_factory=new_id)
    column: ColumnId
    operator: Operator = Field(Operator.EQUALS, description="Filter operator")
    value: str = Field("", description="Raw value; ':name' marks a named parameter")

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v):
        """Candidate fragments may carry numbers or null."""
        if v is None:
            return ""
        if isinstance(v, bool):
            return str(v).lower()
        return str(v)


class OrderBy(BaseModel):
    model_config = DOCUMENT_CONFIG

    id: str = Field(default_factory=new_id)
    column: ColumnId
    direction: SortDirection = SortDirection.ASC


class CalculatedColumn(BaseModel):
    """User-authored formula inserted verbatim into the SELECT list."""
    model_config = DOCUMENT_CONFIG

    id: str = Field(default_factory=new_id)
    alias: str = Field(..., description="Sanitized output name")
    expression: str = Field(..., description="Raw SQL fragment")


class QueryState(BaseModel):
    """
    Complete description of the query under construction.
    Immutable: every edit produces a new value through query_state.mutations.
    """
    model_config = DOCUMENT_CONFIG

    selected_tables: Tuple[TableId, ...] = Field(
        default=(),
        description="Selected tables; the first one is the FROM table"
    )
    selected_columns: Tuple[ColumnId, ...] = Field(
        default=(),
        description="Explicitly selected columns; empty means all columns"
    )
    aggregations: Dict[ColumnId, AggregateFunction] = Field(default_factory=dict)
    joins: Tuple[ExplicitJoin, ...] = ()
    filters: Tuple[Filter, ...] = ()
    group_by: Tuple[ColumnId, ...] = ()
    order_by: Tuple[OrderBy, ...] = ()
    calculated_columns: Tuple[CalculatedColumn, ...] = ()
    limit: int = Field(DEFAULT_LIMIT, description="Row cap; only positive values are emitted")

    @field_validator("selected_tables", "selected_columns", "group_by")
    @classmethod
    def validate_ordered_set(cls, v):
        """Drop repeated entries, keeping first-insertion order."""
        return tuple(dict.fromkeys(v))

    @field_validator("aggregations")
    @classmethod
    def drop_empty_aggregations(cls, v):
        """NONE means no aggregation, so it is never stored."""
        return {column: func for column, func in v.items() if func != AggregateFunction.NONE}

    @field_validator("calculated_columns", mode="before")
    @classmethod
    def default_calculated_columns(cls, v):
        return v if v is not None else ()

    @field_serializer("aggregations")
    def serialize_aggregations(self, aggregations: Dict[ColumnId, AggregateFunction]) -> Dict[str, str]:
        return {str(column): func.value for column, func in aggregations.items()}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_document(self) -> Dict[str, Any]:
        """JSON-compatible document with camelCase keys and string identifiers."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "QueryState":
        return cls.model_validate(document)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, payload: str) -> "QueryState":
        return cls.model_validate_json(payload)

    # ------------------------------------------------------------------
    # Queries over the state
    # ------------------------------------------------------------------

    @property
    def base_table(self) -> Optional[TableId]:
        return self.selected_tables[0] if self.selected_tables else None

    def is_table_selected(self, table_id: TableId) -> bool:
        return table_id in self.selected_tables

    def is_column_selected(self, column_id: ColumnId) -> bool:
        return column_id in self.selected_columns

    def aggregation_for(self, column_id: ColumnId) -> AggregateFunction:
        return self.aggregations.get(column_id, AggregateFunction.NONE)

    @property
    def is_grouped(self) -> bool:
        """Aggregations or GROUP BY turn the query into a grouped query."""
        return bool(self.aggregations) or bool(self.group_by)

    def effective_columns(self) -> List[ColumnId]:
        """Selected columns followed by aggregated columns that were not listed."""
        columns = list(self.selected_columns)
        for column in self.aggregations:
            if column not in columns:
                columns.append(column)
        return columns
