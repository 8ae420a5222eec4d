"""
Benchmark Calculator

Global baselines every grouped metric is compared against:
- Repurchase cycle: mean days_since_prior_order over non-first orders
- Order size: mean distinct-product count over orders with at least one line

No sample-size floor applies at global scope. An empty scope yields an
undefined benchmark (None), never zero.
"""

from dataclasses import dataclass
from typing import Optional

import polars as pl
import structlog

from buying_patterns.config import AnalyticsSettings, get_settings
from buying_patterns.data.relations import RelationView
from .aggregator import Measure

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Benchmark:
    """Global baseline for one measure, at full precision"""
    measure: Measure
    value: Optional[float]
    observations: int
    pinned: bool = False

    @property
    def is_defined(self) -> bool:
        return self.value is not None

    def rounded(self, precision: int = 2) -> Optional[float]:
        return round(self.value, precision) if self.value is not None else None


@dataclass(frozen=True)
class Benchmarks:
    """Both global baselines of a run"""
    repurchase_cycle: Benchmark
    order_size: Benchmark

    def for_measure(self, measure: Measure) -> Benchmark:
        if measure == Measure.REPURCHASE_CYCLE:
            return self.repurchase_cycle
        return self.order_size


class BenchmarkCalculator:
    """
    Computes global benchmarks from a relation view.

    A benchmark can be pinned to a fixed value through the
    order_size_override / repurchase_cycle_override settings; otherwise it
    is recomputed from the snapshot on every run.
    """

    def __init__(self, view: RelationView, settings: Optional[AnalyticsSettings] = None):
        self.view = view
        self.settings = settings or get_settings().analytics

    def query(self, measure: Measure) -> pl.LazyFrame:
        """Single-row frame with value and observations"""
        if measure == Measure.REPURCHASE_CYCLE:
            source = (
                self.view.relations.orders.lazy()
                .filter(pl.col("days_since_prior_order").is_not_null())
                .select(pl.col("days_since_prior_order").cast(pl.Float64).alias("value"))
            )
        else:
            source = self.view.order_sizes.lazy().select(
                pl.col("order_size").cast(pl.Float64).alias("value")
            )

        return source.select(
            pl.col("value").mean().alias("value"),
            pl.len().cast(pl.Int64).alias("observations"),
        )

    def _override(self, measure: Measure) -> Optional[float]:
        if measure == Measure.REPURCHASE_CYCLE:
            return self.settings.repurchase_cycle_override
        return self.settings.order_size_override

    def resolve(self, measure: Measure, frame: pl.DataFrame) -> Benchmark:
        """Build a Benchmark from a collected query frame"""
        row = frame.row(0, named=True)
        observations = row["observations"] or 0
        override = self._override(measure)

        if override is not None:
            logger.info(
                "Benchmark pinned",
                measure=measure.value,
                value=override,
                computed=row["value"],
            )
            return Benchmark(measure, float(override), observations, pinned=True)

        if row["value"] is None:
            logger.warning("No benchmark available", measure=measure.value, observations=observations)
            return Benchmark(measure, None, observations)

        return Benchmark(measure, float(row["value"]), observations)

    def benchmark(self, measure: Measure) -> Benchmark:
        return self.resolve(measure, self.query(measure).collect())

    def compute(self) -> Benchmarks:
        """Compute both benchmarks in one parallel collection"""
        repurchase, order_size = pl.collect_all([
            self.query(Measure.REPURCHASE_CYCLE),
            self.query(Measure.ORDER_SIZE),
        ])
        benchmarks = Benchmarks(
            repurchase_cycle=self.resolve(Measure.REPURCHASE_CYCLE, repurchase),
            order_size=self.resolve(Measure.ORDER_SIZE, order_size),
        )
        logger.info(
            "Benchmarks computed",
            repurchase_cycle=benchmarks.repurchase_cycle.value,
            order_size=benchmarks.order_size.value,
        )
        return benchmarks

    def global_repurchase_cycle(self) -> Optional[float]:
        """Global average repurchase cycle in days, rounded for display"""
        return self.benchmark(Measure.REPURCHASE_CYCLE).rounded(self.settings.precision)

    def global_order_size(self) -> Optional[float]:
        """Global average order size, rounded for display"""
        return self.benchmark(Measure.ORDER_SIZE).rounded(self.settings.precision)
