"""
Query state package.
The serializable query document and the transitions that edit it.
"""

from query_state.models import (
    AggregateFunction,
    Operator,
    JoinType,
    SortDirection,
    ExplicitJoin,
    Filter,
    OrderBy,
    CalculatedColumn,
    QueryState
)

from query_state.mutations import (
    create_empty_state,
    add_table,
    remove_table,
    toggle_table,
    clear_all_tables,
    toggle_column,
    select_all_columns,
    select_no_columns,
    set_aggregation,
    add_join,
    update_join,
    remove_join,
    add_filter,
    update_filter,
    remove_filter,
    toggle_group_by,
    add_sort,
    update_sort,
    remove_sort,
    add_calculated_column,
    remove_calculated_column,
    set_limit,
    apply_state_fragment
)

from query_state.starters import Starter, suggest_starters, apply_starter

__all__ = [
    'AggregateFunction',
    'Operator',
    'JoinType',
    'SortDirection',
    'ExplicitJoin',
    'Filter',
    'OrderBy',
    'CalculatedColumn',
    'QueryState',
    'create_empty_state',
    'add_table',
    'remove_table',
    'toggle_table',
    'clear_all_tables',
    'toggle_column',
    'select_all_columns',
    'select_no_columns',
    'set_aggregation',
    'add_join',
    'update_join',
    'remove_join',
    'add_filter',
    'update_filter',
    'remove_filter',
    'toggle_group_by',
    'add_sort',
    'update_sort',
    'remove_sort',
    'add_calculated_column',
    'remove_calculated_column',
    'set_limit',
    'apply_state_fragment',
    'Starter',
    'suggest_starters',
    'apply_starter'
]

__version__ = "1.0.0"
