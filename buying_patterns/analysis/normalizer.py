"""
Lift / Z-Score Normalizer

Turns grouped metrics into comparable deviations from the global benchmark.

Lift is sign-normalized so a positive value always means "more notable":
- repurchase cycle: benchmark - mean (faster repurchase is a smaller number)
- order size: mean - benchmark (larger orders are a bigger number)

zscore = lift / stddev. A zero stddev leaves the z-score undefined (null),
as does an undefined benchmark. Everything is computed at full precision;
rounding happens only in present().
"""

from typing import Optional

import polars as pl
import structlog

from .aggregator import Measure
from .benchmarks import Benchmark

logger = structlog.get_logger(__name__)


def lift(mean: Optional[float], benchmark: Optional[float], measure: Measure) -> Optional[float]:
    """Signed deviation of a mean from its benchmark"""
    if mean is None or benchmark is None:
        return None
    if measure == Measure.REPURCHASE_CYCLE:
        return benchmark - mean
    return mean - benchmark


def zscore(lift_value: Optional[float], stddev: Optional[float]) -> Optional[float]:
    """Lift in units of population standard deviation, None when undefined"""
    if lift_value is None or stddev is None or stddev == 0:
        return None
    return lift_value / stddev


def lift_expr(benchmark: Benchmark, measure: Measure) -> pl.Expr:
    if benchmark.value is None:
        return pl.lit(None, dtype=pl.Float64)
    if measure == Measure.REPURCHASE_CYCLE:
        return pl.lit(benchmark.value) - pl.col("mean")
    return pl.col("mean") - pl.lit(benchmark.value)


def zscore_expr() -> pl.Expr:
    return (
        pl.when(pl.col("stddev") == 0)
        .then(pl.lit(None, dtype=pl.Float64))
        .otherwise(pl.col("lift") / pl.col("stddev"))
    )


class LiftZScoreNormalizer:
    """
    Adds benchmark, lift and zscore columns to grouped metrics.

    Example:
        normalizer = LiftZScoreNormalizer()
        lifted = normalizer.normalize(metrics, benchmarks.order_size, Measure.ORDER_SIZE)
    """

    def normalize(
        self,
        metrics: pl.DataFrame,
        benchmark: Benchmark,
        measure: Measure,
    ) -> pl.DataFrame:
        """
        Compute LiftResult rows.

        Args:
            metrics: GroupedMetric rows (mean, stddev, sample_count, ...)
            benchmark: Global benchmark of the same measure
            measure: Measure the metrics describe

        Returns:
            metrics with benchmark, lift and zscore columns, sorted by lift
            descending then entity_id ascending; undefined values are null
        """
        if benchmark.measure != measure:
            raise ValueError(
                f"Benchmark measure {benchmark.measure.value} does not match {measure.value}"
            )

        result = (
            metrics
            .with_columns(
                pl.lit(benchmark.value, dtype=pl.Float64).alias("benchmark"),
                lift_expr(benchmark, measure).cast(pl.Float64).alias("lift"),
            )
            .with_columns(zscore_expr().alias("zscore"))
            .sort(["lift", "entity_id"], descending=[True, False], nulls_last=True)
        )

        undefined = result.filter(pl.col("lift").is_not_null() & pl.col("zscore").is_null()).height
        if undefined:
            logger.info("Z-score undefined for zero-spread groups", measure=measure.value, groups=undefined)

        return result


def present(df: pl.DataFrame, precision: int = 2) -> pl.DataFrame:
    """Round every float column for display"""
    return df.with_columns(pl.col(pl.Float32, pl.Float64).round(precision))
