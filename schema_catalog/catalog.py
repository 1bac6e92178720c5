# schema_catalog/catalog.py - built-in schemas

from schema_catalog.models import Column, Table, DatabaseSchema


def create_sample_catalog() -> DatabaseSchema:
    """
    Small e-commerce schema:
    - public.users
    - public.orders (user_id -> public.users.id)
    - public.order_items (order_id -> public.orders.id)
    """
    users = Table(
        name="users",
        schema_name="public",
        description="Registered users",
        columns=[
            Column(name="id", type="SERIAL", is_primary_key=True),
            Column(name="name", type="VARCHAR(100)"),
            Column(name="email", type="VARCHAR(100)"),
            Column(name="created_at", type="TIMESTAMP"),
            Column(name="country", type="VARCHAR(50)"),
        ]
    )

    orders = Table(
        name="orders",
        schema_name="public",
        description="Orders placed by users",
        columns=[
            Column(name="id", type="SERIAL", is_primary_key=True),
            Column(name="user_id", type="INTEGER", is_foreign_key=True, references="public.users.id"),
            Column(name="total_amount", type="DECIMAL(10,2)"),
            Column(name="status", type="VARCHAR(20)"),
            Column(name="created_at", type="TIMESTAMP"),
        ]
    )

    order_items = Table(
        name="order_items",
        schema_name="public",
        description="Line items of each order",
        columns=[
            Column(name="id", type="SERIAL", is_primary_key=True),
            Column(name="order_id", type="INTEGER", is_foreign_key=True, references="public.orders.id"),
            Column(name="product_name", type="VARCHAR(100)"),
            Column(name="quantity", type="INTEGER"),
            Column(name="price", type="DECIMAL(10,2)"),
        ]
    )

    return DatabaseSchema(
        name="ecommerce_sample",
        connection_source="simulated",
        tables=[users, orders, order_items]
    )


def create_multi_schema_catalog() -> DatabaseSchema:
    """
    Catalog spread over several schemas:
    - sales: transactional data
    - ref: lookup tables
    - archive: a replica of sales.orders sharing its primary key
    """
    # ========== REFERENCE SCHEMA (ref) ==========
    customers = Table(
        name="customers",
        schema_name="ref",
        description="Customer reference data",
        columns=[
            Column(name="customer_id", type="integer", is_primary_key=True),
            Column(name="full_name", type="varchar"),
            Column(name="country_code", type="char(2)"),
        ]
    )

    # ========== SALES SCHEMA (sales) ==========
    orders = Table(
        name="orders",
        schema_name="sales",
        description="Customer orders",
        columns=[
            Column(name="id", type="integer", is_primary_key=True),
            Column(name="customer_id", type="integer", is_foreign_key=True, references="ref.customers.customer_id"),
            Column(name="amount_usd", type="numeric"),
            Column(name="order_date", type="date"),
        ]
    )

    # Legacy two-part reference, resolved by table name alone
    refunds = Table(
        name="refunds",
        schema_name="sales",
        description="Refunds issued against orders",
        columns=[
            Column(name="refund_id", type="integer", is_primary_key=True),
            Column(name="order_id", type="integer", is_foreign_key=True, references="orders.id"),
            Column(name="amount_usd", type="numeric"),
        ]
    )

    # ========== ARCHIVE SCHEMA (archive) ==========
    archived_orders = Table(
        name="orders",
        schema_name="archive",
        description="Orders moved out of the hot partition",
        columns=[
            Column(name="id", type="integer", is_primary_key=True),
            Column(name="customer_id", type="integer"),
            Column(name="amount_usd", type="numeric"),
            Column(name="archived_at", type="timestamp"),
        ]
    )

    return DatabaseSchema(
        name="multi_schema_sample",
        connection_source="simulated",
        tables=[customers, orders, refunds, archived_orders]
    )


CATALOGS = {
    "ecommerce": create_sample_catalog,
    "multi_schema": create_multi_schema_catalog,
}


def load_catalog(name: str) -> DatabaseSchema:
    """Build one of the built-in schemas by name."""
    if name not in CATALOGS:
        raise ValueError(f"Catalog '{name}' not found. Available: {sorted(CATALOGS)}")
    return CATALOGS[name]()
