"""
Grouped Metric Aggregator

Per-product and per-department mean, population standard deviation and
observation count for the two behavioral measures:

- Repurchase cycle: one observation per (order, product) line of an order
  that is not the customer's first. Department groups use the same events,
  so a department mean is weighted by purchase volume rather than being an
  average of product averages.
- Order size: the order's distinct-product count, observed once per
  distinct (product, order) or (department, order) pair. A department's
  mean is the average size of orders containing at least one of its items.

Groups with fewer than min_sample_size observations are excluded.
"""

from enum import Enum
from typing import Optional

import polars as pl
import structlog

from buying_patterns.config import AnalyticsSettings, get_settings
from buying_patterns.data.relations import RelationView

logger = structlog.get_logger(__name__)


class EntityType(str, Enum):
    """Grouping keys for behavioral metrics"""
    PRODUCT = "product"
    DEPARTMENT = "department"

    @property
    def key(self) -> str:
        return f"{self.value}_id"


class Measure(str, Enum):
    """Behavioral measures"""
    REPURCHASE_CYCLE = "repurchase_cycle"
    ORDER_SIZE = "order_size"


METRIC_COLUMNS = ["entity_type", "entity_id", "mean", "stddev", "sample_count"]


class GroupedMetricAggregator:
    """
    Computes GroupedMetric rows from a memoized relation view.

    Example:
        aggregator = GroupedMetricAggregator(view)
        metrics = aggregator.aggregate(EntityType.PRODUCT, Measure.REPURCHASE_CYCLE)
    """

    def __init__(self, view: RelationView, settings: Optional[AnalyticsSettings] = None):
        self.view = view
        self.settings = settings or get_settings().analytics

    @property
    def min_sample_size(self) -> int:
        return self.settings.min_sample_size

    def observations(self, entity_type: EntityType, measure: Measure) -> pl.LazyFrame:
        """One row per observation: entity_id, value"""
        key = entity_type.key

        if measure == Measure.REPURCHASE_CYCLE:
            events = self.view.repurchase_events.lazy()
            if entity_type == EntityType.DEPARTMENT:
                events = events.filter(pl.col("department_id").is_not_null())
            return events.select(
                pl.col(key).alias("entity_id"),
                pl.col("days_since_prior_order").cast(pl.Float64).alias("value"),
            )

        observations = self.view.order_size_observations.lazy()
        if entity_type == EntityType.DEPARTMENT:
            # Several products of one department in the same order count once
            observations = (
                observations
                .filter(pl.col("department_id").is_not_null())
                .unique(subset=["order_id", "department_id"])
            )
        return observations.select(
            pl.col(key).alias("entity_id"),
            pl.col("order_size").cast(pl.Float64).alias("value"),
        )

    def grouped(self, entity_type: EntityType, measure: Measure) -> pl.LazyFrame:
        """All groups with their statistics, before the sample-size filter"""
        return (
            self.observations(entity_type, measure)
            .group_by("entity_id")
            .agg(
                pl.col("value").mean().alias("mean"),
                pl.col("value").std(ddof=0).alias("stddev"),
                pl.len().cast(pl.Int64).alias("sample_count"),
            )
            .with_columns(pl.lit(entity_type.value).alias("entity_type"))
            .select(METRIC_COLUMNS)
        )

    def query(self, entity_type: EntityType, measure: Measure) -> pl.LazyFrame:
        """Qualifying groups, sorted by entity id"""
        return (
            self.grouped(entity_type, measure)
            .filter(
                (pl.col("sample_count") >= self.min_sample_size)
                & pl.col("mean").is_not_null()
            )
            .sort("entity_id")
        )

    def excluded_query(self, entity_type: EntityType, measure: Measure) -> pl.LazyFrame:
        """Groups that exist but have too few observations"""
        return (
            self.grouped(entity_type, measure)
            .filter(pl.col("sample_count") < self.min_sample_size)
            .sort("entity_id")
        )

    def aggregate(self, entity_type: EntityType, measure: Measure) -> pl.DataFrame:
        """
        Compute qualifying GroupedMetric rows.

        Args:
            entity_type: product or department
            measure: repurchase cycle or order size

        Returns:
            DataFrame with entity_type, entity_id, mean, stddev, sample_count
        """
        metrics = self.query(entity_type, measure).collect()
        logger.info(
            "Grouped metrics computed",
            entity_type=entity_type.value,
            measure=measure.value,
            groups=len(metrics),
            min_sample_size=self.min_sample_size,
        )
        return metrics

    def excluded(self, entity_type: EntityType, measure: Measure) -> pl.DataFrame:
        """Groups below the sample-size floor, with their observation counts"""
        return self.excluded_query(entity_type, measure).collect()
