"""Tests for query parameter parsing and the listing engine."""

import pytest
from sqlalchemy import insert

from crudforge.actions.fields import (
    filterable_fields,
    listable_fields,
    searchable_fields,
    sortable_fields,
)
from crudforge.config import Settings
from crudforge.errors import ConfigurationError
from crudforge.listing import ListingEngine, parse_query_params

from conftest import write_schema

PRODUCTS = {
    "model": "products",
    "table": "products",
    "timestamps": False,
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "sortable": True},
        "name": {
            "type": "string",
            "sortable": True,
            "filterable": True,
            "searchable": True,
            "show_in": ["list"],
        },
        "category": {"type": "string", "filterable": True, "filter_type": "equals", "show_in": ["list"]},
        "price": {"type": "currency", "sortable": True, "filterable": True, "show_in": ["list"]},
        "sku": {"type": "integer", "filterable": True, "filter_type": "starts_with", "show_in": ["list"]},
        "notes": {"type": "text", "show_in": ["detail"]},
    },
}


def listing_for(model, settings=None):
    schema = model.schema
    return ListingEngine(settings).setup_listing(
        model,
        sortable_fields(schema),
        filterable_fields(schema),
        listable_fields(schema),
        searchable_fields(schema),
    )


@pytest.fixture
def products(service, schema_dir, engine):
    write_schema(schema_dir, "products", PRODUCTS)
    model = service.get_model_instance("products")
    with engine.begin() as conn:
        model.initialize(conn)
        conn.execute(
            insert(model.table),
            [
                {"name": "Red 100% wool", "category": "a", "price": 5.0, "sku": 1001, "notes": "x"},
                {"name": "Blue cotton", "category": "a", "price": 10.0, "sku": 1002, "notes": None},
                {"name": "Green linen", "category": "b", "price": 15.0, "sku": 2001, "notes": None},
                {"name": "Blue silk", "category": "c", "price": 20.0, "sku": 2002, "notes": None},
            ],
        )
    return model


def run(listing, engine, **params):
    options = {"filters": {}, "sorts": {}, "page": None, "size": None, "search": None}
    options.update(params)
    listing.set_options(options)
    with engine.connect() as conn:
        return listing.get_results(conn)


class TestParseQueryParams:
    def test_nested_keys(self):
        options = parse_query_params(
            [
                ("filters[name]", "ann"),
                ("filters[price][min]", "10"),
                ("filters[price][max]", "20"),
                ("filters[tags][]", "a"),
                ("filters[tags][]", "b"),
                ("sorts[name]", "desc"),
                ("page", "2"),
                ("size", "10"),
                ("search", "blue"),
                ("unrelated", "x"),
            ]
        )

        assert options == {
            "filters": {"name": "ann", "price": {"min": "10", "max": "20"}, "tags": ["a", "b"]},
            "sorts": {"name": "desc"},
            "page": 2,
            "size": 10,
            "search": "blue",
        }

    def test_mapping_input_and_bad_integers(self):
        options = parse_query_params({"page": "two", "size": ""})

        assert options["page"] is None
        assert options["size"] is None
        assert options["filters"] == {}


class TestSetup:
    def test_whitelists_drop_unknown_columns(self, products):
        listing = ListingEngine().setup_listing(products, ["price", "bogus"], ["ghost"], ["name"], [])

        assert listing.sortable == ["price"]
        assert listing.filterable == []
        assert listing.list_fields == ["name"]

    def test_requires_setup(self):
        with pytest.raises(ConfigurationError):
            ListingEngine().apply_sort(None)


class TestResults:
    def test_rows_and_count(self, products, engine):
        result = run(listing_for(products), engine)

        assert result["count"] == 4
        assert set(result["rows"][0]) == {"id", "name", "category", "price", "sku"}
        assert [r["id"] for r in result["rows"]] == [1, 2, 3, 4]

    def test_count_is_before_pagination(self, products, engine):
        result = run(listing_for(products), engine, page=2, size=3)

        assert result["count"] == 4
        assert [r["id"] for r in result["rows"]] == [4]

    def test_empty_list_fields_returns_keys_only(self, products, engine):
        listing = ListingEngine().setup_listing(products, [], [], [], [])
        result = run(listing, engine)

        assert result["rows"][0] == {"id": 1}

    def test_soft_deleted_rows_are_excluded(self, db, engine):
        with engine.begin() as conn:
            db["users"].soft_delete(conn, 1)

        result = run(listing_for(db["users"]), engine)
        assert result["count"] == 3
        assert "alice" not in [r["user_name"] for r in result["rows"]]

    def test_sensitive_fields_are_not_listed(self, db, engine):
        result = run(listing_for(db["users"]), engine)
        assert "password" not in result["rows"][0]


class TestPagination:
    def test_size_is_capped(self, products):
        listing = listing_for(products).paginate(1, 1000)
        assert listing.size == 100

    def test_custom_cap(self, products, engine):
        listing = listing_for(products, Settings(max_page_size=2))
        result = run(listing, engine, size=50)

        assert listing.size == 2
        assert len(result["rows"]) == 2
        assert result["count"] == 4

    @pytest.mark.parametrize("page, size, expected", [(0, 0, (1, 25)), (-3, None, (1, 25)), (None, -1, (1, 25)), (3, 7, (3, 7))])
    def test_bounds(self, products, page, size, expected):
        listing = listing_for(products).paginate(page, size)
        assert (listing.page, listing.size) == expected

    def test_cap_with_many_rows(self, products, engine):
        with engine.begin() as conn:
            conn.execute(insert(products.table), [{"name": f"item {i}", "price": 1.0} for i in range(150)])

        result = run(listing_for(products), engine, size=1000)
        assert len(result["rows"]) == 100
        assert result["count"] == 154

    def test_page_past_largest_offset_is_empty(self, products, engine):
        listing = listing_for(products)
        result = run(listing, engine, page=10**19, size=10)

        assert (listing.page - 1) * listing.size <= 2**63 - 1
        assert result["rows"] == []
        assert result["count"] == 4


class TestFilters:
    def test_contains_is_default_for_strings(self, products, engine):
        result = run(listing_for(products), engine, filters={"name": "blue"})
        assert sorted(r["id"] for r in result["rows"]) == [2, 4]

    def test_wildcards_are_escaped(self, products, engine):
        assert run(listing_for(products), engine, filters={"name": "%"})["count"] == 1
        assert run(listing_for(products), engine, filters={"name": "_"})["count"] == 0

    def test_equals_with_list(self, products, engine):
        result = run(listing_for(products), engine, filters={"category": ["a", "c"]})
        assert result["count"] == 3

    def test_starts_with_on_integer_column(self, products, engine):
        result = run(listing_for(products), engine, filters={"sku": "20"})
        assert sorted(r["id"] for r in result["rows"]) == [3, 4]

    @pytest.mark.parametrize(
        "value, expected",
        [
            ({"min": "10", "max": "15"}, [2, 3]),
            ({"from": "15"}, [3, 4]),
            ("10,20", [2, 3, 4]),
            (["", "10"], [1, 2]),
            ("15", [3]),
        ],
    )
    def test_range(self, products, engine, value, expected):
        result = run(listing_for(products), engine, filters={"price": value})
        assert sorted(r["id"] for r in result["rows"]) == expected

    @pytest.mark.parametrize("value", ["abc", {"min": "abc"}, "", None])
    def test_uncoercible_range_values_are_dropped(self, products, engine, value):
        assert run(listing_for(products), engine, filters={"price": value})["count"] == 4

    def test_non_filterable_fields_have_no_effect(self, products, engine):
        result = run(listing_for(products), engine, filters={"notes": "x", "bogus": "1"})
        assert result["count"] == 4

    def test_filters_combine(self, products, engine):
        result = run(listing_for(products), engine, filters={"name": "blue", "category": "a"})
        assert [r["id"] for r in result["rows"]] == [2]


class TestSearch:
    def test_search_matches_any_searchable_field(self, db, engine):
        result = run(listing_for(db["users"]), engine, search="example.org")
        assert [r["user_name"] for r in result["rows"]] == ["dave"]

    def test_search_is_case_insensitive_for_ascii(self, db, engine):
        result = run(listing_for(db["users"]), engine, search="CAROL")
        assert result["count"] == 1

    def test_blank_search_is_a_noop(self, db, engine):
        assert run(listing_for(db["users"]), engine, search="   ")["count"] == 4

    def test_no_searchable_fields_is_a_noop(self, products, engine):
        listing = ListingEngine().setup_listing(products, [], [], ["name"], [])
        assert run(listing, engine, search="zzz")["count"] == 4


class TestSort:
    def test_requested_sort(self, products, engine):
        result = run(listing_for(products), engine, sorts={"price": "desc"})
        assert [r["id"] for r in result["rows"]] == [4, 3, 2, 1]

    def test_non_sortable_fields_are_ignored(self, products, engine):
        result = run(listing_for(products), engine, sorts={"category": "desc", "price": "sideways"})
        assert [r["id"] for r in result["rows"]] == [1, 2, 3, 4]

    def test_default_sort_from_schema(self, db, engine):
        result = run(listing_for(db["users"]), engine, sorts={"bogus": "asc"})
        assert [r["user_name"] for r in result["rows"]] == ["alice", "bob", "carol", "dave"]

    def test_multiple_sorts(self, products, engine):
        result = run(listing_for(products), engine, sorts={"name": "asc", "price": "desc"})
        assert [r["name"] for r in result["rows"]][:2] == ["Blue cotton", "Blue silk"]


class TestExtendQuery:
    def test_clause(self, db, engine):
        users = db["users"]
        listing = listing_for(users).extend_query(users.column("group_id") == 5)
        assert run(listing, engine)["count"] == 3

    def test_callable(self, db, engine):
        listing = listing_for(db["users"]).extend_query(lambda m: m.column("group_id") == 6)
        result = run(listing, engine)

        assert [r["user_name"] for r in result["rows"]] == ["dave"]

    def test_constraints_survive_set_options(self, db, engine):
        users = db["users"]
        listing = listing_for(users).extend_query(users.column("group_id") == 5)

        assert run(listing, engine, search="a")["count"] == 3
        assert run(listing, engine, search="dave")["count"] == 0
