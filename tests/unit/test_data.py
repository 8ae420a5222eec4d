"""
Unit Tests - Data Access and Synthetic Snapshots
"""
import polars as pl
import pytest
from polars.testing import assert_frame_equal

from buying_patterns.data import FileFormat, Relations, SnapshotGenerator
from buying_patterns.data.generators import MAX_DAYS_SINCE_PRIOR
from buying_patterns.data.relations import REQUIRED_COLUMNS, RelationView
from buying_patterns.exceptions import MalformedRelationError


class TestRelations:
    """Tests for reading and writing snapshots"""

    def test_csv_round_trip(self, relations_factory, tmp_path):
        relations = relations_factory([(None, [1, 2]), (4.0, [2, 3])])

        relations.write(tmp_path)
        loaded = Relations.from_directory(tmp_path)

        for name, df in relations.items():
            assert_frame_equal(getattr(loaded, name), df, check_dtypes=False)

    def test_days_read_as_float(self, relations_factory, tmp_path):
        """A column of first orders only is still numeric"""
        relations_factory([(None, [1]), (None, [2])]).write(tmp_path)

        loaded = Relations.from_directory(tmp_path, FileFormat.CSV)

        assert loaded.orders["days_since_prior_order"].dtype == pl.Float64
        assert loaded.orders["days_since_prior_order"].null_count() == 2

    def test_prior_file_name_accepted(self, relations_factory, tmp_path):
        relations_factory([(None, [1, 2])]).write(tmp_path)
        (tmp_path / "order_products.csv").rename(tmp_path / "order_products__prior.csv")

        loaded = Relations.from_directory(tmp_path)

        assert len(loaded.order_products) == 2

    def test_missing_file(self, relations_factory, tmp_path):
        relations_factory([(None, [1])]).write(tmp_path)
        (tmp_path / "aisles.csv").unlink()

        with pytest.raises(MalformedRelationError) as exc_info:
            Relations.from_directory(tmp_path)

        assert exc_info.value.relation == "aisles"

    def test_parquet(self, relations_factory, tmp_path):
        relations = relations_factory([(None, [1]), (2.0, [1])])

        relations.write(tmp_path, "parquet")
        loaded = Relations.from_directory(tmp_path, "parquet")

        assert_frame_equal(loaded.orders, relations.orders)


class TestRelationView:
    """Tests for memoized intermediate views"""

    def test_order_lines_deduplicated(self, view_factory):
        view = view_factory([(None, [1, 1, 2])])

        assert len(view.order_lines) == 2

    def test_order_sizes(self, view_factory):
        view = view_factory([(None, [1, 2, 2]), (3.0, [4])])

        sizes = dict(view.order_sizes.sort("order_id").iter_rows())

        assert sizes == {1: 2, 2: 1}

    def test_repurchase_events_skip_first_orders(self, view_factory):
        view = view_factory([(None, [1, 2]), (3.0, [1])], {1: 4, 2: 5})

        events = view.repurchase_events

        assert events.columns == ["order_id", "product_id", "department_id", "days_since_prior_order"]
        assert events.row(0) == (2, 1, 4, 3.0)
        assert len(events) == 1

    def test_product_dimensions(self, view_factory):
        view = view_factory([(None, [1])], {1: 2})

        row = view.product_dimensions.row(0, named=True)

        assert row["department"] == "Department 2"
        assert row["aisle"] == "Aisle 2"

    def test_memoized_until_refresh(self, view_factory):
        view = view_factory([(None, [1])])

        first = view.order_lines
        assert view.order_lines is first

        view.refresh()
        assert view.order_lines is not first

    def test_materialize(self, view_factory):
        """Every view is computed up front and reused afterwards"""
        view = view_factory([(None, [1, 2]), (7.0, [1])])

        assert view.materialize() is view
        for name in RelationView._CACHED:
            assert name in view.__dict__

        lines = view.order_lines
        view.materialize()
        assert view.order_lines is lines


class TestSnapshotGenerator:
    """Tests for synthetic snapshots"""

    def test_deterministic(self):
        first = SnapshotGenerator(seed=11).generate(n_users=20, n_products=30)
        second = SnapshotGenerator(seed=11).generate(n_users=20, n_products=30)

        for name, df in first.items():
            assert_frame_equal(df, getattr(second, name))

    def test_shape(self):
        relations = SnapshotGenerator(seed=5).generate(n_users=25, n_products=30, min_orders=4, max_orders=6)

        for name, df in relations.items():
            assert set(REQUIRED_COLUMNS[name]) <= set(df.columns)
        assert len(relations.products) == 30
        assert relations.orders["user_id"].n_unique() == 25
        assert relations.orders["order_id"].is_unique().all()

    def test_first_orders_have_no_gap(self):
        orders = SnapshotGenerator(seed=5).generate(n_users=25, n_products=30).orders

        first = orders.filter(pl.col("order_number") == 1)
        later = orders.filter(pl.col("order_number") > 1)

        assert first["days_since_prior_order"].null_count() == len(first)
        assert later["days_since_prior_order"].null_count() == 0
        assert later["days_since_prior_order"].max() <= MAX_DAYS_SINCE_PRIOR

    def test_generate_to(self, tmp_path):
        written = SnapshotGenerator(seed=1).generate_to(tmp_path, n_users=10, n_products=30)

        assert set(written) == set(Relations.names())
        assert Relations.from_directory(tmp_path).orders["user_id"].n_unique() == 10
