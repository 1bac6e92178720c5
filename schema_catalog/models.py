"""
Schema Catalog Models
Describes the database the composer works against: tables, columns and keys.
The schema is supplied by an external connector or generator and is read-only
for the lifetime of a query-building session.
"""

from typing import List, Optional, Literal, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer, model_validator
from pydantic.alias_generators import to_camel


DEFAULT_SCHEMA = "public"


class TableId(BaseModel):
    """
    Identifies a table by (schema, table).
    Canonical string form is "<schema>.<table>"; schema defaults to "public".
    """
    model_config = ConfigDict(frozen=True)

    schema_name: str = Field(DEFAULT_SCHEMA, description="Schema the table lives in")
    table_name: str = Field(..., description="Physical table name")

    @model_validator(mode="before")
    @classmethod
    def _coerce_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return cls._split(data)
        return data

    @staticmethod
    def _split(value: str) -> dict:
        parts = value.strip().split(".")
        if any(not part for part in parts):
            raise ValueError(f"Invalid table identifier: '{value}'")
        if len(parts) == 1:
            return {"schema_name": DEFAULT_SCHEMA, "table_name": parts[0]}
        return {"schema_name": parts[0], "table_name": ".".join(parts[1:])}

    @classmethod
    def parse(cls, value: "str | TableId") -> "TableId":
        """Build a TableId from "<schema>.<table>" or a bare table name."""
        if isinstance(value, TableId):
            return value
        return cls(**cls._split(value))

    @model_serializer
    def _serialize(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    def column(self, name: str) -> "ColumnId":
        """Fully-qualified id of a column on this table."""
        return ColumnId(table_id=self, name=name)


class ColumnId(BaseModel):
    """
    Fully-qualified column id "<schema>.<table>.<column>".
    The only way columns are referenced inside a query state.
    """
    model_config = ConfigDict(frozen=True)

    table_id: TableId
    name: str

    @model_validator(mode="before")
    @classmethod
    def _coerce_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return cls._split(data)
        return data

    @staticmethod
    def _split(value: str) -> dict:
        parts = value.strip().split(".")
        if len(parts) < 2 or any(not part for part in parts):
            raise ValueError(f"Invalid column identifier: '{value}'")
        if len(parts) == 2:
            # Legacy "<table>.<column>" form
            table_id = TableId(schema_name=DEFAULT_SCHEMA, table_name=parts[0])
        else:
            table_id = TableId(schema_name=parts[0], table_name=".".join(parts[1:-1]))
        return {"table_id": table_id, "name": parts[-1]}

    @classmethod
    def parse(cls, value: "str | ColumnId") -> "ColumnId":
        """Build a ColumnId from its string form."""
        if isinstance(value, ColumnId):
            return value
        return cls(**cls._split(value))

    @model_serializer
    def _serialize(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return f"{self.table_id}.{self.name}"

    def belongs_to(self, table_id: TableId) -> bool:
        return self.table_id == table_id


class ForeignKeyReference(BaseModel):
    """Parsed target of a column's `references` string."""
    model_config = ConfigDict(frozen=True)

    schema_name: Optional[str] = None
    table_name: str
    column_name: str

    @classmethod
    def parse(cls, references: Optional[str]) -> Optional["ForeignKeyReference"]:
        """
        Parse "<schema>.<table>.<column>" or legacy "<table>.<column>".
        Anything else is treated as no reference.
        """
        if not references:
            return None
        parts = references.strip().split(".")
        if any(not part for part in parts):
            return None
        if len(parts) == 3:
            return cls(schema_name=parts[0], table_name=parts[1], column_name=parts[2])
        if len(parts) == 2:
            return cls(table_name=parts[0], column_name=parts[1])
        return None

    def points_to(self, table_id: TableId) -> bool:
        """
        Legacy references carry no schema and match on table name alone.
        """
        if self.schema_name is None:
            return self.table_name == table_id.table_name
        return self.schema_name == table_id.schema_name and self.table_name == table_id.table_name


class Column(BaseModel):
    """A column belongs to exactly one table."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., description="Column name")
    type: str = Field("", description="Declared type, free-form (e.g. integer, varchar)")
    is_primary_key: bool = Field(False, description="Part of the primary key")
    is_foreign_key: bool = Field(False, description="References another table")
    references: Optional[str] = Field(
        None,
        description="Target as '<schema>.<table>.<column>' or legacy '<table>.<column>'"
    )

    def foreign_key_target(self) -> Optional[ForeignKeyReference]:
        """Referenced column, only for columns flagged as foreign keys."""
        if not self.is_foreign_key:
            return None
        return ForeignKeyReference.parse(self.references)


class Table(BaseModel):
    """A table and its columns."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., description="Table name")
    schema_name: str = Field(DEFAULT_SCHEMA, alias="schema", description="Schema qualifier")
    columns: List[Column] = Field(default_factory=list)
    description: Optional[str] = Field(None, description="Human-readable description")

    @field_validator("schema_name", mode="before")
    @classmethod
    def _default_schema(cls, v):
        return v or DEFAULT_SCHEMA

    @property
    def table_id(self) -> TableId:
        return TableId(schema_name=self.schema_name, table_name=self.name)

    def get_column(self, name: str) -> Optional[Column]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def has_column(self, name: str) -> bool:
        return self.get_column(name) is not None


class DatabaseSchema(BaseModel):
    """
    The whole schema description handed to the composer.
    Table identifiers are unique within a schema.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    name: str = Field(..., description="Schema/database display name")
    tables: List[Table] = Field(default_factory=list)
    connection_source: Optional[Literal["ai", "ddl", "simulated", "real"]] = Field(
        None,
        description="Where the schema description came from"
    )

    @field_validator("tables")
    @classmethod
    def validate_unique_tables(cls, v):
        """Ensure every table id appears once."""
        seen = set()
        for table in v:
            if table.table_id in seen:
                raise ValueError(f"Duplicate table '{table.table_id}' in schema")
            seen.add(table.table_id)
        return v

    @property
    def table_ids(self) -> List[TableId]:
        return [table.table_id for table in self.tables]

    def find_table(self, table_id: "TableId | str") -> Optional[Table]:
        """Look up a table, returning None when it is not in the schema."""
        table_id = TableId.parse(table_id)
        for table in self.tables:
            if table.table_id == table_id:
                return table
        return None

    def get_table(self, table_id: "TableId | str") -> Table:
        """Get a table by id."""
        table = self.find_table(table_id)
        if table is None:
            raise ValueError(f"Table '{table_id}' not found in schema '{self.name}'")
        return table

    def has_table(self, table_id: "TableId | str") -> bool:
        return self.find_table(table_id) is not None

    def find_column(self, column_id: "ColumnId | str") -> Optional[Column]:
        column_id = ColumnId.parse(column_id)
        table = self.find_table(column_id.table_id)
        if table is None:
            return None
        return table.get_column(column_id.name)
