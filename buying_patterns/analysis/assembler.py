"""
Result Assembler

Builds the flat tables consumed by the dashboard: labelled per-entity lift
results and the anchor-keyed export joining co-purchase pairs with the
anchor's repurchase-cycle and order-size lift results and its department,
aisle and product names.

Pairs whose anchor has no qualifying lift result for either measure are
left out of the export.
"""

from typing import Optional

import polars as pl
import structlog

from buying_patterns.config import AnalyticsSettings, get_settings
from buying_patterns.data.relations import RelationView
from .aggregator import EntityType

logger = structlog.get_logger(__name__)

LIFT_COLUMNS = ["mean", "stddev", "lift", "zscore", "sample_count"]

REPURCHASE_EXPORT_NAMES = {
    "mean": "product_avg_repurchase_cycle",
    "stddev": "stddev_repurchase_cycle",
    "lift": "repurchase_cycle_lift",
    "zscore": "zscore_repurchase_cycle",
    "sample_count": "number_of_repurchase_events",
}

ORDER_SIZE_EXPORT_NAMES = {
    "mean": "avg_order_size",
    "stddev": "stddev_order_size",
    "lift": "order_size_lift",
    "zscore": "zscore_order_size",
    "sample_count": "number_of_orders",
}

EXPORT_COLUMNS = [
    "anchor_id",
    "anchor_name",
    "repurchase_cycle_lift",
    "zscore_repurchase_cycle",
    "product_avg_repurchase_cycle",
    "stddev_repurchase_cycle",
    "number_of_repurchase_events",
    "order_size_lift",
    "zscore_order_size",
    "avg_order_size",
    "stddev_order_size",
    "number_of_orders",
    "department",
    "aisle",
    "co_product_id",
    "co_product_name",
    "pair_count",
    "anchor_total_orders",
    "anchor_percentage",
]


class ResultAssembler:
    """Joins metric, co-purchase and dimension tables into output tables"""

    def __init__(self, view: RelationView, settings: Optional[AnalyticsSettings] = None):
        self.view = view
        self.settings = settings or get_settings().analytics

    def label(self, lifted: pl.DataFrame, entity_type: EntityType) -> pl.DataFrame:
        """
        Attach display names to a lift result.

        Product rows become (product_id, product_name, ...); department rows
        become (department_id, department, ...). Row order is preserved.
        """
        if entity_type == EntityType.PRODUCT:
            names = self.view.relations.products.select(["product_id", "product_name"])
            name_column = "product_name"
        else:
            names = self.view.relations.departments.select(["department_id", "department"])
            name_column = "department"

        key = entity_type.key
        return (
            lifted
            .rename({"entity_id": key})
            .with_row_index("_row")
            .join(names, on=key, how="left")
            .sort("_row")
            .select([key, name_column, *LIFT_COLUMNS])
        )

    def _anchor_metrics(self, lifted: pl.DataFrame, names: dict) -> pl.DataFrame:
        return lifted.select(
            pl.col("entity_id").alias("anchor_id"),
            *[pl.col(column).alias(alias) for column, alias in names.items()],
        )

    def assemble(
        self,
        copurchase: pl.DataFrame,
        repurchase_lift: pl.DataFrame,
        order_size_lift: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        Build the anchor-keyed export.

        Args:
            copurchase: CoPurchaseEngine.anchor_view() result
            repurchase_lift: product-level repurchase-cycle LiftResult rows
            order_size_lift: product-level order-size LiftResult rows

        Returns:
            One row per surviving (anchor, co-product) pair, sorted by
            anchor_percentage descending then ids ascending
        """
        dimensions = self.view.product_dimensions.select(
            pl.col("product_id").alias("anchor_id"), "department", "aisle"
        )

        export = (
            copurchase
            .join(self._anchor_metrics(repurchase_lift, REPURCHASE_EXPORT_NAMES), on="anchor_id", how="inner")
            .join(self._anchor_metrics(order_size_lift, ORDER_SIZE_EXPORT_NAMES), on="anchor_id", how="inner")
            .join(dimensions, on="anchor_id", how="left")
            .select(EXPORT_COLUMNS)
            .sort(
                ["anchor_percentage", "anchor_id", "co_product_id"],
                descending=[True, False, False],
            )
        )

        dropped = len(copurchase) - len(export)
        if dropped:
            logger.info(
                "Pairs dropped from export: anchor lacks qualifying lift results",
                pairs=dropped,
            )
        logger.info("Export assembled", rows=len(export))
        return export
