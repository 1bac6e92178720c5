"""
Schema catalog package - the in-memory description of the database.
Defines tables, columns, keys and the identifiers used to reference them.
"""

from schema_catalog.models import (
    DEFAULT_SCHEMA,
    TableId,
    ColumnId,
    ForeignKeyReference,
    Column,
    Table,
    DatabaseSchema
)

from schema_catalog.catalog import (
    create_sample_catalog,
    create_multi_schema_catalog,
    load_catalog,
    CATALOGS
)

__all__ = [
    'DEFAULT_SCHEMA',
    'TableId',
    'ColumnId',
    'ForeignKeyReference',
    'Column',
    'Table',
    'DatabaseSchema',
    'create_sample_catalog',
    'create_multi_schema_catalog',
    'load_catalog',
    'CATALOGS'
]

__version__ = "1.0.0"
