"""
SQL compiler package for deterministic SQL generation.
Query state in, SQL text out; join inference and formula checks live alongside.
"""

from sql_compiler.errors import (
    QueryComposerError,
    CompilationError,
    StructuralError,
    ConsistencyError,
    EmptySelectionError,
    ExpressionValidationError
)

from sql_compiler.templates import (
    FilterSQLBuilder,
    SQLTemplates
)

from sql_compiler.validator import ExpressionValidator, QueryStateValidator, sanitize_alias
from sql_compiler.relationships import RelationshipInferenceEngine, infer_join, suggest_join
from sql_compiler.compiler import (
    AliasRegistry,
    CompiledQuery,
    SQLCompiler
)

__all__ = [
    'QueryComposerError',
    'CompilationError',
    'StructuralError',
    'ConsistencyError',
    'EmptySelectionError',
    'ExpressionValidationError',
    'FilterSQLBuilder',
    'SQLTemplates',
    'ExpressionValidator',
    'QueryStateValidator',
    'sanitize_alias',
    'RelationshipInferenceEngine',
    'infer_join',
    'suggest_join',
    'AliasRegistry',
    'CompiledQuery',
    'SQLCompiler'
]

__version__ = "1.0.0"
