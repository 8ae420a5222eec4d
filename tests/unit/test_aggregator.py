"""
Unit Tests - Grouped Metric Aggregator
"""
import polars as pl
import pytest
from polars.testing import assert_frame_equal

from buying_patterns.analysis.aggregator import (
    METRIC_COLUMNS,
    EntityType,
    GroupedMetricAggregator,
    Measure,
)
from buying_patterns.data.relations import Relations, RelationView


class TestProductRepurchaseCycle:
    """Tests for per-product repurchase cycle metrics"""

    def test_mean_and_population_stddev(self, view_factory, analytics_settings):
        """Alternating 10 and 20 days: mean 15, population stddev 5"""
        orders = [(None, [1])] + [(10.0 if i % 2 else 20.0, [1]) for i in range(30)]
        aggregator = GroupedMetricAggregator(view_factory(orders), analytics_settings)

        metrics = aggregator.aggregate(EntityType.PRODUCT, Measure.REPURCHASE_CYCLE)

        assert metrics.columns == METRIC_COLUMNS
        row = metrics.row(0, named=True)
        assert row["entity_type"] == "product"
        assert row["entity_id"] == 1
        assert row["mean"] == pytest.approx(15.0)
        assert row["stddev"] == pytest.approx(5.0)
        assert row["sample_count"] == 30

    def test_sample_size_boundary(self, view_factory, analytics_settings):
        """30 observations qualify, 29 do not"""
        orders = [(3.0, [1])] * 30 + [(5.0, [2])] * 29
        aggregator = GroupedMetricAggregator(view_factory(orders), analytics_settings)

        metrics = aggregator.aggregate(EntityType.PRODUCT, Measure.REPURCHASE_CYCLE)
        excluded = aggregator.excluded(EntityType.PRODUCT, Measure.REPURCHASE_CYCLE)

        assert metrics["entity_id"].to_list() == [1]
        assert excluded["entity_id"].to_list() == [2]
        assert excluded["sample_count"].to_list() == [29]

    def test_first_orders_are_not_events(self, view_factory, analytics_settings):
        """Products only ever bought in first orders have no group"""
        orders = [(None, [1])] * 40
        aggregator = GroupedMetricAggregator(view_factory(orders), analytics_settings)

        assert aggregator.aggregate(EntityType.PRODUCT, Measure.REPURCHASE_CYCLE).is_empty()
        assert aggregator.excluded(EntityType.PRODUCT, Measure.REPURCHASE_CYCLE).is_empty()

    def test_duplicate_lines_counted_once(self, view_factory, analytics_settings):
        """A product listed twice in one order is one event"""
        orders = [(6.0, [1, 1])] * 30
        aggregator = GroupedMetricAggregator(view_factory(orders), analytics_settings)

        metrics = aggregator.aggregate(EntityType.PRODUCT, Measure.REPURCHASE_CYCLE)

        assert metrics["sample_count"].to_list() == [30]

    def test_sorted_by_entity_id(self, view_factory, permissive_settings):
        orders = [(1.0, [5, 3, 9])]
        aggregator = GroupedMetricAggregator(view_factory(orders), permissive_settings)

        metrics = aggregator.aggregate(EntityType.PRODUCT, Measure.REPURCHASE_CYCLE)

        assert metrics["entity_id"].to_list() == [3, 5, 9]


class TestDepartmentRepurchaseCycle:
    """Tests for per-department repurchase cycle metrics"""

    def test_weighted_by_purchase_volume(self, view_factory, analytics_settings):
        """90 events at 10 days and 30 at 40 days average to 17.5, not 25"""
        orders = [(10.0, [1])] * 90 + [(40.0, [2])] * 30
        aggregator = GroupedMetricAggregator(
            view_factory(orders, {1: 7, 2: 7}), analytics_settings
        )

        metrics = aggregator.aggregate(EntityType.DEPARTMENT, Measure.REPURCHASE_CYCLE)

        row = metrics.row(0, named=True)
        assert row["entity_type"] == "department"
        assert row["entity_id"] == 7
        assert row["mean"] == pytest.approx(17.5)
        assert row["sample_count"] == 120


class TestOrderSize:
    """Tests for order-size metrics"""

    @pytest.fixture
    def aggregator(self, view_factory, analytics_settings):
        # 30 orders with products 1 and 2 (department 1) and 3 (department 2),
        # 30 orders with product 3 alone
        orders = [(None, [1, 2, 3])] * 30 + [(None, [3])] * 30
        return GroupedMetricAggregator(
            view_factory(orders, {1: 1, 2: 1, 3: 2}), analytics_settings
        )

    def test_product_order_size(self, aggregator):
        metrics = aggregator.aggregate(EntityType.PRODUCT, Measure.ORDER_SIZE)
        rows = {row["entity_id"]: row for row in metrics.iter_rows(named=True)}

        assert rows[1]["mean"] == pytest.approx(3.0)
        assert rows[1]["sample_count"] == 30
        assert rows[3]["mean"] == pytest.approx(2.0)
        assert rows[3]["sample_count"] == 60
        assert rows[3]["stddev"] == pytest.approx(1.0)

    def test_department_counts_each_order_once(self, aggregator):
        """Two department-1 products in one order give one observation"""
        metrics = aggregator.aggregate(EntityType.DEPARTMENT, Measure.ORDER_SIZE)
        rows = {row["entity_id"]: row for row in metrics.iter_rows(named=True)}

        assert rows[1]["sample_count"] == 30
        assert rows[1]["mean"] == pytest.approx(3.0)
        assert rows[2]["sample_count"] == 60
        assert rows[2]["mean"] == pytest.approx(2.0)

    def test_order_size_uses_distinct_products(self, view_factory, analytics_settings):
        orders = [(None, [1, 1, 2])] * 30
        aggregator = GroupedMetricAggregator(view_factory(orders), analytics_settings)

        metrics = aggregator.aggregate(EntityType.PRODUCT, Measure.ORDER_SIZE)

        assert metrics.filter(pl.col("entity_id") == 1)["mean"][0] == pytest.approx(2.0)


class TestDeterminism:
    """Tests for order-independent results"""

    def test_row_order_of_inputs_does_not_matter(self, relations_factory, permissive_settings):
        orders = [(float(i % 7), [i % 5 + 1, i % 3 + 10]) for i in range(60)]
        relations = relations_factory(orders)
        shuffled = Relations(
            orders=relations.orders.reverse(),
            order_products=relations.order_products.reverse(),
            products=relations.products.reverse(),
            departments=relations.departments,
            aisles=relations.aisles,
        )

        for entity_type in EntityType:
            for measure in Measure:
                first = GroupedMetricAggregator(RelationView(relations), permissive_settings)
                second = GroupedMetricAggregator(RelationView(shuffled), permissive_settings)
                assert_frame_equal(
                    first.aggregate(entity_type, measure),
                    second.aggregate(entity_type, measure),
                )
