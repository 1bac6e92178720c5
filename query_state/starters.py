"""
Starter suggestions for an empty query state.
Looks at table and column names to offer a few one-click queries.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from schema_catalog.models import DatabaseSchema, Table
from query_state.models import QueryState
from query_state.mutations import apply_state_fragment, clear_all_tables


MAX_STARTERS = 3
STARTER_LIMIT = 10

USER_TABLE_NAMES = {"users", "user", "customer", "customers", "cliente", "clientes"}
ORDER_TABLE_NAMES = {"orders", "order", "sales", "pedidos", "vendas"}


class Starter(BaseModel):
    """A ready-made state fragment offered when nothing is selected yet."""
    title: str = Field(..., description="Short label")
    description: str = Field("", description="What the starter shows")
    fragment: Dict[str, Any] = Field(..., description="State document fragment to apply")


def _find_table(schema: DatabaseSchema, names: set) -> Optional[Table]:
    for table in schema.tables:
        if table.name.lower() in names:
            return table
    return None


def suggest_starters(schema: DatabaseSchema, state: Optional[QueryState] = None) -> List[Starter]:
    """Up to three starters; none once the user has selected a table."""
    if state is not None and state.selected_tables:
        return []

    starters = []

    # 1. List a users/customers table
    users = _find_table(schema, USER_TABLE_NAMES)
    if users:
        starters.append(Starter(
            title=f"List {users.name}",
            description="Show the first 10 rows.",
            fragment={"selectedTables": [str(users.table_id)], "limit": 10}
        ))

    # 2. Count an orders/sales table
    orders = _find_table(schema, ORDER_TABLE_NAMES)
    if orders:
        pk = next((c.name for c in orders.columns if c.is_primary_key), "id")
        pk_id = str(orders.table_id.column(pk))
        starters.append(Starter(
            title=f"Count {orders.name}",
            description="Total number of rows in the table.",
            fragment={
                "selectedTables": [str(orders.table_id)],
                "selectedColumns": [pk_id],
                "aggregations": {pk_id: "COUNT"},
            }
        ))

    # 3. Most recent rows of a table with created_at
    recent = next((t for t in schema.tables if t.has_column("created_at")), None)
    if recent:
        starters.append(Starter(
            title=f"Recent {recent.name}",
            description="Last 20 rows added.",
            fragment={
                "selectedTables": [str(recent.table_id)],
                "orderBy": [{"column": str(recent.table_id.column("created_at")), "direction": "DESC"}],
                "limit": 20,
            }
        ))

    if not starters and schema.tables:
        first = schema.tables[0]
        starters.append(Starter(
            title=f"Explore {first.name}",
            description="Browse this table.",
            fragment={"selectedTables": [str(first.table_id)], "limit": 10}
        ))

    return starters[:MAX_STARTERS]


def apply_starter(state: QueryState, starter: Starter, schema: Optional[DatabaseSchema] = None) -> QueryState:
    """Replace the current selection with the starter's fragment; 10 rows unless it sets a limit."""
    fragment = {"limit": STARTER_LIMIT, **starter.fragment}
    return apply_state_fragment(clear_all_tables(state), fragment, schema)
