"""
Unit Tests - Lift / Z-Score Normalizer
"""
import polars as pl
import pytest

from buying_patterns.analysis.aggregator import Measure
from buying_patterns.analysis.benchmarks import Benchmark
from buying_patterns.analysis.normalizer import (
    LiftZScoreNormalizer,
    lift,
    present,
    zscore,
)


@pytest.fixture
def metrics():
    """Grouped metrics for three products"""
    return pl.DataFrame({
        "entity_type": ["product"] * 3,
        "entity_id": [1, 2, 3],
        "mean": [8.0, 12.0, 10.0],
        "stddev": [4.0, 2.0, 0.0],
        "sample_count": [30, 45, 60],
    })


class TestLift:
    """Tests for sign conventions"""

    def test_faster_repurchase_is_positive(self):
        assert lift(10.0, 12.0, Measure.REPURCHASE_CYCLE) == 2.0

    def test_slower_repurchase_is_negative(self):
        assert lift(15.0, 12.0, Measure.REPURCHASE_CYCLE) == -3.0

    def test_larger_orders_are_positive(self):
        assert lift(12.0, 10.0, Measure.ORDER_SIZE) == 2.0

    def test_undefined_benchmark(self):
        assert lift(12.0, None, Measure.ORDER_SIZE) is None


class TestZScore:
    """Tests for z-score edge cases"""

    def test_zscore(self):
        assert zscore(2.0, 4.0) == 0.5

    def test_zero_stddev_is_undefined(self):
        assert zscore(2.0, 0.0) is None

    def test_zero_lift_is_zero(self):
        """A computed zero is distinguishable from an undefined value"""
        result = zscore(0.0, 2.0)
        assert result is not None
        assert result == 0.0

    def test_undefined_lift(self):
        assert zscore(None, 2.0) is None


class TestLiftZScoreNormalizer:
    """Tests for frame normalization"""

    def test_repurchase_cycle(self, metrics):
        benchmark = Benchmark(Measure.REPURCHASE_CYCLE, 10.0, 500)

        result = LiftZScoreNormalizer().normalize(metrics, benchmark, Measure.REPURCHASE_CYCLE)
        rows = {row["entity_id"]: row for row in result.iter_rows(named=True)}

        assert rows[1]["lift"] == pytest.approx(2.0)
        assert rows[1]["zscore"] == pytest.approx(0.5)
        assert rows[2]["lift"] == pytest.approx(-2.0)
        assert rows[2]["zscore"] == pytest.approx(-1.0)
        assert rows[3]["lift"] == pytest.approx(0.0)
        assert rows[3]["zscore"] is None
        assert result["benchmark"].to_list() == [10.0, 10.0, 10.0]

    def test_sorted_by_lift_descending(self, metrics):
        benchmark = Benchmark(Measure.ORDER_SIZE, 10.0, 500)

        result = LiftZScoreNormalizer().normalize(metrics, benchmark, Measure.ORDER_SIZE)

        assert result["entity_id"].to_list() == [2, 3, 1]

    def test_ties_broken_by_entity_id(self):
        metrics = pl.DataFrame({
            "entity_type": ["product"] * 2,
            "entity_id": [9, 4],
            "mean": [11.0, 11.0],
            "stddev": [1.0, 1.0],
            "sample_count": [30, 30],
        })

        result = LiftZScoreNormalizer().normalize(
            metrics, Benchmark(Measure.ORDER_SIZE, 10.0, 100), Measure.ORDER_SIZE
        )

        assert result["entity_id"].to_list() == [4, 9]

    def test_undefined_benchmark(self, metrics):
        """Every lift and z-score is null, rows are kept"""
        benchmark = Benchmark(Measure.ORDER_SIZE, None, 0)

        result = LiftZScoreNormalizer().normalize(metrics, benchmark, Measure.ORDER_SIZE)

        assert len(result) == 3
        assert result["lift"].null_count() == 3
        assert result["zscore"].null_count() == 3

    def test_measure_mismatch(self, metrics):
        with pytest.raises(ValueError):
            LiftZScoreNormalizer().normalize(
                metrics, Benchmark(Measure.ORDER_SIZE, 10.0, 1), Measure.REPURCHASE_CYCLE
            )

    def test_full_precision(self):
        """Rounding the inputs first would turn this lift into zero"""
        metrics = pl.DataFrame({
            "entity_type": ["product"],
            "entity_id": [1],
            "mean": [10.004],
            "stddev": [0.001],
            "sample_count": [30],
        })

        result = LiftZScoreNormalizer().normalize(
            metrics, Benchmark(Measure.ORDER_SIZE, 10.0, 100), Measure.ORDER_SIZE
        )

        assert result["lift"][0] == pytest.approx(0.004)
        assert result["zscore"][0] == pytest.approx(4.0)

    def test_empty_metrics(self, metrics):
        result = LiftZScoreNormalizer().normalize(
            metrics.clear(), Benchmark(Measure.ORDER_SIZE, 10.0, 1), Measure.ORDER_SIZE
        )

        assert result.is_empty()
        assert {"benchmark", "lift", "zscore"} <= set(result.columns)


class TestPresent:
    """Tests for display rounding"""

    def test_rounds_float_columns(self):
        df = pl.DataFrame({"entity_id": [1], "lift": [0.123456], "zscore": [None]}, schema={
            "entity_id": pl.Int64,
            "lift": pl.Float64,
            "zscore": pl.Float64,
        })

        result = present(df, precision=2)

        assert result["lift"][0] == 0.12
        assert result["zscore"][0] is None
        assert result["entity_id"][0] == 1
