"""
Co-Purchase Engine

Counts how many orders contain each unordered pair of distinct products
and expresses each surviving pair relative to an anchor product.

Pairs are enumerated per order (lines self-joined on order_id), so the
cost follows the sum of squared basket sizes rather than the square of the
total line count. Keys are canonical (smaller id, larger id); self-pairs
are never produced. The stability filter applies to the symmetric pair
count, while the anchor percentage is directional:

    anchor_percentage(A, B) = 100 * orders(A and B) / orders(A)
"""

from functools import cached_property
from typing import Any, Optional, Tuple

import polars as pl
import structlog

from buying_patterns.config import AnalyticsSettings, get_settings
from buying_patterns.data.relations import RelationView

logger = structlog.get_logger(__name__)

ANCHOR_COLUMNS = [
    "anchor_id",
    "anchor_name",
    "co_product_id",
    "co_product_name",
    "pair_count",
    "anchor_total_orders",
    "anchor_percentage",
]


def canonical_pair(a: Any, b: Any) -> Tuple[Any, Any]:
    """Order a product pair as (smaller id, larger id)"""
    if a == b:
        raise ValueError(f"A product cannot be paired with itself: {a!r}")
    return (a, b) if a < b else (b, a)


class CoPurchaseEngine:
    """
    Co-occurrence counts and anchor-relative percentages.

    Example:
        engine = CoPurchaseEngine(view)
        engine.pair_count(24852, 13176)
        engine.anchor_percentage(anchor=24852, co_product=13176)
    """

    def __init__(self, view: RelationView, settings: Optional[AnalyticsSettings] = None):
        self.view = view
        self.settings = settings or get_settings().analytics

    def refresh(self) -> None:
        for name in ("_pairs", "_anchor_totals"):
            self.__dict__.pop(name, None)

    def all_pairs_query(self) -> pl.LazyFrame:
        """Every co-occurring pair with its order count, unfiltered"""
        lines = self.view.order_lines.lazy()
        return (
            lines
            .join(lines, on="order_id", how="inner", suffix="_b")
            .filter(pl.col("product_id") < pl.col("product_id_b"))
            .group_by(["product_id", "product_id_b"])
            .agg(pl.len().cast(pl.Int64).alias("pair_count"))
            .rename({"product_id": "product_a", "product_id_b": "product_b"})
        )

    def pair_counts_query(self) -> pl.LazyFrame:
        """Pairs meeting the stability floor, most frequent first"""
        return (
            self.all_pairs_query()
            .filter(pl.col("pair_count") >= self.settings.min_sample_size)
            .sort(["pair_count", "product_a", "product_b"], descending=[True, False, False])
        )

    def anchor_order_counts_query(self) -> pl.LazyFrame:
        """Distinct orders per product"""
        return (
            self.view.order_lines.lazy()
            .group_by("product_id")
            .agg(pl.len().cast(pl.Int64).alias("anchor_total_orders"))
            .rename({"product_id": "anchor_id"})
            .sort("anchor_id")
        )

    @cached_property
    def _pairs(self) -> pl.DataFrame:
        pairs = self.pair_counts_query().collect()
        logger.info(
            "Co-purchase pairs counted",
            pairs=len(pairs),
            min_sample_size=self.settings.min_sample_size,
        )
        return pairs

    @cached_property
    def _anchor_totals(self) -> pl.DataFrame:
        return self.anchor_order_counts_query().collect()

    def pair_counts(self) -> pl.DataFrame:
        """Canonical pairs (product_a < product_b) with pair_count >= floor"""
        return self._pairs

    def anchor_order_counts(self) -> pl.DataFrame:
        return self._anchor_totals

    def pair_count(self, a: Any, b: Any) -> Optional[int]:
        """Co-occurrence count of a retained pair, in either argument order"""
        product_a, product_b = canonical_pair(a, b)
        match = self._pairs.filter(
            (pl.col("product_a") == product_a) & (pl.col("product_b") == product_b)
        )
        if match.is_empty():
            return None
        return match["pair_count"][0]

    def anchor_total_orders(self, anchor: Any) -> int:
        match = self._anchor_totals.filter(pl.col("anchor_id") == anchor)
        if match.is_empty():
            return 0
        return match["anchor_total_orders"][0]

    def anchor_percentage(self, anchor: Any, co_product: Any) -> Optional[float]:
        """
        Share of the anchor's orders that also contain co_product.

        Returns:
            Percentage rounded for display, or None when the pair does not
            meet the stability floor
        """
        count = self.pair_count(anchor, co_product)
        total = self.anchor_total_orders(anchor)
        if count is None or total == 0:
            return None
        return round(100.0 * count / total, self.settings.precision)

    def anchor_view(
        self,
        both_directions: Optional[bool] = None,
        pairs: Optional[pl.DataFrame] = None,
        anchor_totals: Optional[pl.DataFrame] = None,
    ) -> pl.DataFrame:
        """
        Co-purchase result set with product names and anchor percentages.

        Args:
            both_directions: emit each pair once per orientation; by default
                the smaller id of a pair is the anchor
            pairs: precomputed pair_counts() frame
            anchor_totals: precomputed anchor_order_counts() frame

        Returns:
            DataFrame with ANCHOR_COLUMNS, percentage at full precision,
            sorted by anchor_percentage descending
        """
        if both_directions is None:
            both_directions = self.settings.copurchase_both_directions
        pairs = self._pairs if pairs is None else pairs
        anchor_totals = self._anchor_totals if anchor_totals is None else anchor_totals

        oriented = pairs.select(
            pl.col("product_a").alias("anchor_id"),
            pl.col("product_b").alias("co_product_id"),
            "pair_count",
        )
        if both_directions:
            flipped = pairs.select(
                pl.col("product_b").alias("anchor_id"),
                pl.col("product_a").alias("co_product_id"),
                "pair_count",
            )
            oriented = pl.concat([oriented, flipped])

        names = self.view.relations.products.select(["product_id", "product_name"])

        return (
            oriented
            .join(anchor_totals, on="anchor_id", how="inner")
            .with_columns(
                (100.0 * pl.col("pair_count") / pl.col("anchor_total_orders")).alias("anchor_percentage")
            )
            .join(
                names.rename({"product_id": "anchor_id", "product_name": "anchor_name"}),
                on="anchor_id",
                how="left",
            )
            .join(
                names.rename({"product_id": "co_product_id", "product_name": "co_product_name"}),
                on="co_product_id",
                how="left",
            )
            .select(ANCHOR_COLUMNS)
            .sort(
                ["anchor_percentage", "anchor_id", "co_product_id"],
                descending=[True, False, False],
            )
        )
