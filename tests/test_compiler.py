"""
Tests for SQL compiler and templates.
"""

import pytest
from schema_catalog.catalog import create_sample_catalog, create_multi_schema_catalog
from schema_catalog.models import Column, Table, DatabaseSchema, ColumnId
from query_state.models import QueryState, ExplicitJoin, Filter, Operator, JoinType, AggregateFunction
from query_state import mutations
from sql_compiler.compiler import SQLCompiler, AliasRegistry
from sql_compiler.templates import FilterSQLBuilder, classify_column_type
from sql_compiler.errors import ConsistencyError, EmptySelectionError, StructuralError


ORDERS_TO_USERS = dict(
    from_table="public.orders",
    from_column="user_id",
    type=JoinType.LEFT,
    to_table="public.users",
    to_column="id"
)


@pytest.fixture
def compiler():
    return SQLCompiler(create_sample_catalog())


@pytest.fixture
def empty():
    return mutations.create_empty_state(limit=100)


def two_column_schema():
    """Table t with one measure and one plain column."""
    return DatabaseSchema(
        name="grouping",
        tables=[
            Table(
                name="t",
                columns=[
                    Column(name="amount", type="numeric"),
                    Column(name="region", type="varchar"),
                ]
            )
        ]
    )


class TestFilterSQLBuilder:
    """Test WHERE condition rendering."""

    def test_equals_filter(self):
        """Strings are quoted, numbers pass through."""
        text = Filter(column="public.users.country", operator=Operator.EQUALS, value="Brazil")
        number = Filter(column="public.orders.total_amount", operator=Operator.GREATER_THAN, value="100")

        assert FilterSQLBuilder.build_filter_sql(text, "VARCHAR(50)") == "public.users.country = 'Brazil'"
        assert FilterSQLBuilder.build_filter_sql(number, "DECIMAL(10,2)") == "public.orders.total_amount > 100"

    def test_in_filter(self):
        """Comma separated values become a literal list."""
        filter_cond = Filter(column="public.orders.status", operator=Operator.IN, value="paid, shipped")
        sql = FilterSQLBuilder.build_filter_sql(filter_cond, "VARCHAR(20)")
        assert sql == "public.orders.status IN ('paid', 'shipped')"

        numbers = Filter(column="public.orders.id", operator=Operator.IN, value="1,2, 3")
        assert FilterSQLBuilder.build_filter_sql(numbers, "SERIAL") == "public.orders.id IN (1, 2, 3)"

    def test_empty_in_list_rejected(self):
        filter_cond = Filter(column="public.orders.status", operator=Operator.IN, value=" , ")
        with pytest.raises(ConsistencyError):
            FilterSQLBuilder.build_filter_sql(filter_cond, "VARCHAR(20)")

    def test_unary_operators_ignore_value(self):
        filter_cond = Filter(column="public.users.email", operator=Operator.IS_NULL, value="ignored")
        assert FilterSQLBuilder.build_filter_sql(filter_cond) == "public.users.email IS NULL"

    def test_parameters_are_verbatim(self):
        """':name' values are left for the executor to bind."""
        filter_cond = Filter(column="public.orders.total_amount", operator=Operator.GREATER_THAN_OR_EQUAL, value=":min_total")
        assert FilterSQLBuilder.build_filter_sql(filter_cond, "VARCHAR") == "public.orders.total_amount >= :min_total"
        assert FilterSQLBuilder.parameter_names([filter_cond]) == ["min_total"]

    def test_quotes_are_escaped(self):
        filter_cond = Filter(column="public.users.name", value="O'Brien")
        assert FilterSQLBuilder.build_filter_sql(filter_cond, "VARCHAR(100)") == "public.users.name = 'O''Brien'"

    def test_type_hints(self):
        """Declared types decide quoting of ambiguous values."""
        zip_code = Filter(column="public.users.name", value="123")
        assert FilterSQLBuilder.build_filter_sql(zip_code, "varchar") == "public.users.name = '123'"
        assert FilterSQLBuilder.build_filter_sql(zip_code, None) == "public.users.name = 123"

        flag = Filter(column="public.t.active", value="yes")
        assert FilterSQLBuilder.build_filter_sql(flag, "boolean") == "public.t.active = TRUE"

        pattern = Filter(column="public.orders.id", operator=Operator.LIKE, value="12%")
        assert FilterSQLBuilder.build_filter_sql(pattern, "integer") == "public.orders.id LIKE '12%'"

    def test_classify_column_type(self):
        assert classify_column_type("DECIMAL(10,2)") == "number"
        assert classify_column_type("TIMESTAMP") == "string"
        assert classify_column_type("bool") == "boolean"
        assert classify_column_type("") == "unknown"
        assert classify_column_type("geometry") == "unknown"


class TestAliasRegistry:
    """Test aggregate alias allocation."""

    def test_collisions_are_qualified(self):
        registry = AliasRegistry()
        users_id = ColumnId.parse("public.users.id")
        orders_id = ColumnId.parse("public.orders.id")
        archive_id = ColumnId.parse("archive.orders.id")

        assert registry.get_alias(users_id, AggregateFunction.COUNT) == "id_count"
        assert registry.get_alias(orders_id, AggregateFunction.COUNT) == "orders_id_count"
        assert registry.get_alias(archive_id, AggregateFunction.COUNT) == "orders_id_count_1"

    def test_reserved_names(self):
        registry = AliasRegistry(reserved=["amount_sum"])
        column = ColumnId.parse("public.t.amount")
        assert registry.get_alias(column, AggregateFunction.SUM) == "t_amount_sum"


class TestSelectAndFrom:
    """Test SELECT list and FROM/JOIN emission."""

    def test_single_table_wildcard(self, compiler, empty):
        """One table, nothing else selected."""
        state = mutations.add_table(empty, "public.users")
        assert compiler.compile_sql(state).sql == "SELECT public.users.* FROM public.users LIMIT 100"

    def test_explicit_columns(self, compiler, empty):
        state = mutations.toggle_column(empty, "public.users.name")
        state = mutations.toggle_column(state, "public.users.email")
        sql = compiler.compile_sql(state).sql
        assert sql == "SELECT public.users.name, public.users.email FROM public.users LIMIT 100"

    def test_join_from_base_table(self, compiler, empty):
        state = mutations.add_table(empty, "public.orders")
        state = mutations.add_table(state, "public.users")
        state = mutations.add_join(state, ExplicitJoin(**ORDERS_TO_USERS))

        assert compiler.compile_sql(state).sql == (
            "SELECT public.orders.*, public.users.* FROM public.orders "
            "LEFT JOIN public.users ON public.orders.user_id = public.users.id LIMIT 100"
        )

    def test_join_is_flipped_when_target_is_base(self, compiler, empty):
        """orders LEFT JOIN users becomes users RIGHT JOIN orders."""
        state = mutations.add_table(empty, "public.users")
        state = mutations.add_table(state, "public.orders")
        state = mutations.add_join(state, ExplicitJoin(**ORDERS_TO_USERS))

        assert compiler.compile_sql(state).sql == (
            "SELECT public.users.*, public.orders.* FROM public.users "
            "RIGHT JOIN public.orders ON public.orders.user_id = public.users.id LIMIT 100"
        )

    def test_composite_key_conditions_are_combined(self, compiler, empty):
        state = mutations.add_table(empty, "public.orders")
        state = mutations.add_table(state, "public.users")
        state = mutations.add_join(state, ExplicitJoin(**ORDERS_TO_USERS))
        state = mutations.add_join(state, ExplicitJoin(
            from_table="public.orders", from_column="created_at",
            type=JoinType.LEFT,
            to_table="public.users", to_column="created_at"
        ))

        compiled = compiler.compile_sql(state)
        assert "LEFT JOIN public.users ON public.orders.user_id = public.users.id " \
               "AND public.orders.created_at = public.users.created_at" in compiled.sql
        assert compiled.metadata["join_count"] == 1
        assert compiled.warnings == []

    def test_folded_join_keeps_first_type(self, compiler, empty):
        """A second key column with another join type is reported, not applied."""
        state = mutations.add_table(empty, "public.orders")
        state = mutations.add_table(state, "public.users")
        state = mutations.add_join(state, ExplicitJoin(**ORDERS_TO_USERS))
        state = mutations.add_join(state, ExplicitJoin(
            from_table="public.orders", from_column="created_at",
            type=JoinType.INNER,
            to_table="public.users", to_column="created_at"
        ))

        compiled = compiler.compile_sql(state)
        assert "LEFT JOIN public.users ON public.orders.user_id = public.users.id " \
               "AND public.orders.created_at = public.users.created_at" in compiled.sql
        assert "INNER JOIN" not in compiled.sql
        assert len(compiled.warnings) == 1
        assert "keeping LEFT JOIN public.users" in compiled.warnings[0]

    def test_folded_join_written_backwards(self, compiler, empty):
        """users RIGHT JOIN orders is the same clause as orders LEFT JOIN users."""
        state = mutations.add_table(empty, "public.orders")
        state = mutations.add_table(state, "public.users")
        state = mutations.add_join(state, ExplicitJoin(**ORDERS_TO_USERS))
        state = mutations.add_join(state, ExplicitJoin(
            from_table="public.users", from_column="created_at",
            type=JoinType.RIGHT,
            to_table="public.orders", to_column="created_at"
        ))

        compiled = compiler.compile_sql(state)
        assert "AND public.users.created_at = public.orders.created_at" in compiled.sql
        assert compiled.warnings == []

    def test_joins_are_retried_until_connected(self, compiler, empty):
        """A join whose tables are not in FROM yet waits for the others."""
        state = empty
        for table in ["public.users", "public.orders", "public.order_items"]:
            state = mutations.add_table(state, table)
        state = mutations.add_join(state, ExplicitJoin(
            from_table="public.order_items", from_column="order_id",
            to_table="public.orders", to_column="id"
        ))
        state = mutations.add_join(state, ExplicitJoin(
            from_table="public.orders", from_column="user_id",
            to_table="public.users", to_column="id"
        ))

        compiled = compiler.compile_sql(state)
        assert compiled.sql == (
            "SELECT public.users.*, public.orders.*, public.order_items.* FROM public.users "
            "INNER JOIN public.orders ON public.orders.user_id = public.users.id "
            "INNER JOIN public.order_items ON public.order_items.order_id = public.orders.id LIMIT 100"
        )
        assert compiled.warnings == []
        assert compiled.metadata["tables"] == ["public.users", "public.orders", "public.order_items"]

    def test_unjoined_table_is_cross_joined_with_warning(self, compiler, empty):
        state = mutations.add_table(empty, "public.users")
        state = mutations.add_table(state, "public.orders")

        compiled = compiler.compile_sql(state)
        assert compiled.sql == "SELECT public.users.*, public.orders.* FROM public.users, public.orders LIMIT 100"
        assert len(compiled.warnings) == 1
        assert "public.orders" in compiled.warnings[0]
        assert compiled.metadata["unjoined_tables"] == ["public.orders"]

    def test_disconnected_join_chain(self, compiler, empty):
        """Joins that never reach the base table form their own FROM item."""
        state = empty
        for table in ["public.users", "public.orders", "public.order_items"]:
            state = mutations.add_table(state, table)
        state = mutations.add_join(state, ExplicitJoin(
            from_table="public.order_items", from_column="order_id",
            to_table="public.orders", to_column="id"
        ))

        compiled = compiler.compile_sql(state)
        assert "FROM public.users, public.order_items INNER JOIN public.orders " \
               "ON public.order_items.order_id = public.orders.id" in compiled.sql
        assert compiled.metadata["unjoined_tables"] == ["public.order_items"]
        assert len(compiled.warnings) == 1

    def test_calculated_columns(self, compiler, empty):
        state = mutations.add_table(empty, "public.orders")
        state = mutations.add_calculated_column(state, "Net", "total_amount * 0.9")
        assert compiler.compile_sql(state).sql == "SELECT (total_amount * 0.9) AS net FROM public.orders LIMIT 100"

        state = mutations.toggle_column(state, "public.orders.status")
        assert compiler.compile_sql(state).sql == (
            "SELECT public.orders.status, (total_amount * 0.9) AS net FROM public.orders LIMIT 100"
        )

    def test_duplicate_calculated_alias(self, compiler):
        state = QueryState.from_document({
            "selectedTables": ["public.orders"],
            "calculatedColumns": [
                {"alias": "x", "expression": "1"},
                {"alias": "x", "expression": "2"},
            ]
        })
        with pytest.raises(ConsistencyError):
            compiler.compile_sql(state)

    def test_multi_schema_join_and_date_filter(self, empty):
        compiler = SQLCompiler(create_multi_schema_catalog())
        state = mutations.add_table(empty, "sales.orders")
        state = mutations.add_table(state, "ref.customers")
        state = mutations.add_join(state, ExplicitJoin(
            from_table="sales.orders", from_column="customer_id",
            type=JoinType.LEFT,
            to_table="ref.customers", to_column="customer_id"
        ))
        state = mutations.add_filter(state, "sales.orders.order_date", Operator.GREATER_THAN, "2024-01-01")

        assert compiler.compile_sql(state).sql == (
            "SELECT sales.orders.*, ref.customers.* FROM sales.orders "
            "LEFT JOIN ref.customers ON sales.orders.customer_id = ref.customers.customer_id "
            "WHERE sales.orders.order_date > '2024-01-01' LIMIT 100"
        )


class TestGrouping:
    """Test aggregate / GROUP BY consistency."""

    def test_grouped_query(self, compiler, empty):
        state = mutations.toggle_column(empty, "public.orders.status")
        state = mutations.set_aggregation(state, "public.orders.total_amount", AggregateFunction.SUM)
        state = mutations.toggle_group_by(state, "public.orders.status")

        compiled = compiler.compile_sql(state)
        assert compiled.sql == (
            "SELECT public.orders.status, SUM(public.orders.total_amount) AS total_amount_sum "
            "FROM public.orders GROUP BY public.orders.status LIMIT 100"
        )
        assert compiled.metadata["grouped"] is True

    def test_plain_column_outside_group_by(self, compiler, empty):
        state = mutations.toggle_column(empty, "public.orders.status")
        state = mutations.set_aggregation(state, "public.orders.total_amount", AggregateFunction.SUM)

        with pytest.raises(ConsistencyError) as exc_info:
            compiler.compile_sql(state)
        assert exc_info.value.column == "public.orders.status"
        assert "public.orders.status" in exc_info.value.message

    def test_implicit_columns_must_be_grouped(self):
        """With nothing explicitly selected, every other column of the table counts."""
        compiler = SQLCompiler(two_column_schema())
        state = QueryState.from_document({
            "selectedTables": ["public.t"],
            "selectedColumns": [],
            "aggregations": {"public.t.amount": "SUM"},
            "groupBy": [],
        })

        with pytest.raises(ConsistencyError) as exc_info:
            compiler.compile_sql(state)
        assert exc_info.value.column == "public.t.region"

        fixed = mutations.toggle_group_by(state, "public.t.region")
        assert compiler.compile_sql(fixed).sql == (
            "SELECT public.t.region, SUM(public.t.amount) AS amount_sum "
            "FROM public.t GROUP BY public.t.region LIMIT 100"
        )

    def test_aggregate_only(self, compiler, empty):
        """An aggregated column alone needs no GROUP BY."""
        state = mutations.set_aggregation(empty, "public.orders.id", AggregateFunction.COUNT)
        assert compiler.compile_sql(state).sql == "SELECT COUNT(public.orders.id) AS id_count FROM public.orders LIMIT 100"

    def test_alias_collision_across_tables(self, compiler, empty):
        state = mutations.add_table(empty, "public.orders")
        state = mutations.add_table(state, "public.users")
        state = mutations.add_join(state, ExplicitJoin(**ORDERS_TO_USERS))
        state = mutations.set_aggregation(state, "public.users.id", AggregateFunction.COUNT)
        state = mutations.set_aggregation(state, "public.orders.id", AggregateFunction.COUNT)

        assert compiler.compile_sql(state).sql.startswith(
            "SELECT COUNT(public.users.id) AS id_count, COUNT(public.orders.id) AS orders_id_count FROM"
        )


class TestWhereOrderLimit:
    """Test WHERE, ORDER BY and LIMIT clauses."""

    def test_filters_are_conjunctive(self, compiler, empty):
        state = mutations.add_table(empty, "public.orders")
        state = mutations.add_filter(state, "public.orders.status", Operator.EQUALS, "paid")
        state = mutations.add_filter(state, "public.orders.total_amount", Operator.GREATER_THAN, ":min_total")

        compiled = compiler.compile_sql(state)
        assert compiled.sql == (
            "SELECT public.orders.* FROM public.orders "
            "WHERE public.orders.status = 'paid' AND public.orders.total_amount > :min_total LIMIT 100"
        )
        assert compiled.metadata["parameters"] == ["min_total"]

    def test_order_by(self, compiler, empty):
        state = mutations.add_table(empty, "public.users")
        state = mutations.add_sort(state, "public.users.created_at", "DESC")
        state = mutations.add_sort(state, "public.users.name")
        assert compiler.compile_sql(state).sql == (
            "SELECT public.users.* FROM public.users "
            "ORDER BY public.users.created_at DESC, public.users.name ASC LIMIT 100"
        )

    def test_non_positive_limit(self, compiler, empty):
        """Omitted in preview, rejected by strict generation."""
        state = mutations.set_limit(mutations.add_table(empty, "public.users"), 0)

        assert compiler.compile_sql(state).sql == "SELECT public.users.* FROM public.users"
        assert compiler.preview_sql(state) == "SELECT public.users.* FROM public.users"
        with pytest.raises(ConsistencyError):
            compiler.generate_sql(state)


class TestErrorsAndPolicies:
    """Test failure modes and preview/generate policies."""

    def test_empty_selection(self, compiler):
        state = QueryState.from_document({
            "selectedTables": [],
            "filters": [{"column": "public.users.name", "operator": "=", "value": "x"}],
            "limit": 5,
        })
        with pytest.raises(EmptySelectionError):
            compiler.compile_sql(state)
        with pytest.raises(EmptySelectionError):
            compiler.generate_sql(state)

    def test_unknown_table(self, compiler):
        state = QueryState.from_document({"selectedTables": ["public.nope"]})
        with pytest.raises(StructuralError):
            compiler.compile_sql(state)

    def test_dangling_column(self, compiler):
        state = QueryState.from_document({
            "selectedTables": ["public.users"],
            "selectedColumns": ["public.orders.status"],
        })
        with pytest.raises(StructuralError) as exc_info:
            compiler.compile_sql(state)
        assert exc_info.value.table == "public.orders"

    def test_preview_never_raises(self, compiler, empty):
        assert compiler.preview_sql(empty).startswith("-- EmptySelectionError: ")

        state = mutations.toggle_column(empty, "public.orders.status")
        state = mutations.set_aggregation(state, "public.orders.total_amount", AggregateFunction.SUM)
        assert compiler.preview_sql(state).startswith("-- ConsistencyError: ")

    def test_preview_appends_warnings(self, compiler, empty):
        state = mutations.add_table(empty, "public.users")
        state = mutations.add_table(state, "public.orders")
        lines = compiler.preview_sql(state).split("\n")
        assert lines[0] == "SELECT public.users.*, public.orders.* FROM public.users, public.orders LIMIT 100"
        assert lines[1].startswith("-- warning: ")

    def test_generate_returns_compiled_query(self, compiler, empty):
        state = mutations.add_table(empty, "public.users")
        compiled = compiler.generate_sql(state)
        assert compiled.sql == "SELECT public.users.* FROM public.users LIMIT 100"
        assert compiled.metadata["base_table"] == "public.users"


class TestDeterminism:
    """Same state, same SQL."""

    def test_round_trip_compiles_identically(self, compiler, empty):
        state = mutations.toggle_column(empty, "public.orders.status")
        state = mutations.add_table(state, "public.users")
        state = mutations.add_join(state, ExplicitJoin(**ORDERS_TO_USERS))
        state = mutations.set_aggregation(state, "public.orders.total_amount", "AVG")
        state = mutations.toggle_group_by(state, "public.orders.status")
        state = mutations.add_filter(state, "public.users.country", Operator.IN, "BR, PT")
        state = mutations.add_sort(state, "public.orders.status")
        state = mutations.add_calculated_column(state, "one", "1")

        restored = QueryState.from_json(state.to_json())
        assert restored == state
        assert compiler.compile_sql(restored).sql == compiler.compile_sql(state).sql

    def test_repeated_compilation(self, compiler, empty):
        state = mutations.add_table(empty, "public.users")
        assert compiler.compile_sql(state) == compiler.compile_sql(state)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
