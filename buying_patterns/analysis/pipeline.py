"""
Behavioral Analytics Pipeline

Orchestrates one full recompute over an immutable snapshot:

1. Validate the base relations (structural errors abort the run)
2. Benchmarks, grouped metrics and co-purchase counts, collected together
   as independent polars queries
3. Lift / z-score normalization against the benchmarks
4. Anchor-relative co-purchase percentages
5. Assembly of the anchor-keyed export

Statistical conditions (too few observations, zero spread, no benchmark)
are recorded as warnings and the run completes with partial results.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import polars as pl
import structlog

from buying_patterns.config import AnalyticsSettings, get_settings
from buying_patterns.config.logging import run_context
from buying_patterns.data.relations import FileFormat, Relations, RelationView
from buying_patterns.exceptions import AnalysisWarning, WarningKind
from buying_patterns.quality.validators import ValidationResult, ensure_valid
from .aggregator import EntityType, GroupedMetricAggregator, Measure
from .assembler import ResultAssembler
from .benchmarks import BenchmarkCalculator, Benchmarks
from .copurchase import CoPurchaseEngine
from .normalizer import LiftZScoreNormalizer, present

logger = structlog.get_logger(__name__)

GROUPS: List[Tuple[EntityType, Measure]] = [
    (EntityType.PRODUCT, Measure.REPURCHASE_CYCLE),
    (EntityType.PRODUCT, Measure.ORDER_SIZE),
    (EntityType.DEPARTMENT, Measure.REPURCHASE_CYCLE),
    (EntityType.DEPARTMENT, Measure.ORDER_SIZE),
]

# Output table name of each result set
OUTPUT_NAMES: Dict[str, str] = {
    "product_repurchase": "repurchase_lift_results",
    "product_order_size": "order_lift_results",
    "department_repurchase": "department_repurchase_lift_results",
    "department_order_size": "department_order_lift_results",
    "copurchase": "copurchase_results",
    "export": "final_export",
}


def result_key(entity_type: EntityType, measure: Measure) -> str:
    suffix = "repurchase" if measure == Measure.REPURCHASE_CYCLE else "order_size"
    return f"{entity_type.value}_{suffix}"


def write_tables(
    tables: Dict[str, pl.DataFrame],
    output_dir: Union[str, Path],
    file_format: Union[str, FileFormat] = FileFormat.CSV,
) -> Dict[str, str]:
    """Write each table to output_dir as <name>.<format>, replacing previous files"""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    file_format = FileFormat(file_format)
    written = {}

    for name, df in tables.items():
        path = output_dir / f"{name}.{file_format.value}"
        if file_format == FileFormat.PARQUET:
            df.write_parquet(path)
        else:
            df.write_csv(path)
        written[name] = str(path)
        logger.info(f"Written {len(df)} rows to {path}")

    return written


def benchmark_warnings(benchmarks: Benchmarks) -> List[AnalysisWarning]:
    """EMPTY_INPUT for each benchmark with no observations"""
    return [
        AnalysisWarning(
            kind=WarningKind.EMPTY_INPUT,
            stage="benchmarks",
            message=f"No observations for the global {benchmark.measure.value} benchmark; lifts are undefined",
            details={"measure": benchmark.measure.value},
        )
        for benchmark in (benchmarks.repurchase_cycle, benchmarks.order_size)
        if not benchmark.is_defined
    ]


def group_warnings(
    key: str,
    excluded: pl.DataFrame,
    lifted: pl.DataFrame,
    min_sample_size: int,
) -> List[AnalysisWarning]:
    """INSUFFICIENT_SAMPLE and UNDEFINED_STATISTIC records of one result set"""
    warnings = []

    if len(excluded):
        warnings.append(AnalysisWarning(
            kind=WarningKind.INSUFFICIENT_SAMPLE,
            stage=key,
            message=f"{len(excluded)} groups below {min_sample_size} observations excluded",
            details={"entity_ids": excluded["entity_id"].to_list()[:20]},
            affected=len(excluded),
        ))

    undefined = lifted.filter(pl.col("lift").is_not_null() & pl.col("zscore").is_null()).height
    if undefined:
        warnings.append(AnalysisWarning(
            kind=WarningKind.UNDEFINED_STATISTIC,
            stage=key,
            message=f"Z-score undefined for {undefined} groups with zero standard deviation",
            affected=undefined,
        ))

    return warnings


def collect_warnings(
    benchmarks: Benchmarks,
    excluded: Dict[str, pl.DataFrame],
    lifted: Dict[str, pl.DataFrame],
    min_sample_size: int,
) -> List[AnalysisWarning]:
    """
    Recoverable conditions of a run, in stage order.

    Args:
        benchmarks: resolved global benchmarks
        excluded: below-threshold groups keyed by result_key()
        lifted: normalized result sets keyed by result_key()
        min_sample_size: threshold the groups were filtered with
    """
    warnings = benchmark_warnings(benchmarks)
    for entity_type, measure in GROUPS:
        key = result_key(entity_type, measure)
        warnings.extend(group_warnings(key, excluded[key], lifted[key], min_sample_size))
    return warnings


@dataclass
class AnalysisResult:
    """Result sets and diagnostics of one pipeline run"""
    benchmarks: Benchmarks
    product_repurchase: pl.DataFrame
    product_order_size: pl.DataFrame
    department_repurchase: pl.DataFrame
    department_order_size: pl.DataFrame
    copurchase: pl.DataFrame
    export: pl.DataFrame
    started_at: datetime
    completed_at: datetime
    precision: int = 2
    warnings: List[AnalysisWarning] = field(default_factory=list)
    validation: Dict[str, ValidationResult] = field(default_factory=dict)
    run_id: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    def tables(self) -> Dict[str, pl.DataFrame]:
        """Result sets keyed by output name, rounded for presentation"""
        return {
            output: present(getattr(self, attribute), self.precision)
            for attribute, output in OUTPUT_NAMES.items()
        }

    def write(
        self,
        output_dir: Union[str, Path],
        file_format: Union[str, FileFormat] = FileFormat.CSV,
    ) -> Dict[str, str]:
        """
        Write every result set as a flat table, replacing previous files.

        Returns:
            Mapping of output name to written path
        """
        return write_tables(self.tables(), output_dir, file_format)


class AnalysisPipeline:
    """
    Full-recompute behavioral analytics over one snapshot.

    Example:
        relations = Relations.from_directory("data/raw")
        result = AnalysisPipeline(relations).run()
        result.write("data/results")
    """

    def __init__(
        self,
        relations: Relations,
        settings: Optional[AnalyticsSettings] = None,
        validate: bool = True,
    ):
        self.relations = relations
        self.settings = settings or get_settings().analytics
        self.validate = validate

        self.view = RelationView(relations)
        self.benchmark_calculator = BenchmarkCalculator(self.view, self.settings)
        self.aggregator = GroupedMetricAggregator(self.view, self.settings)
        self.normalizer = LiftZScoreNormalizer()
        self.copurchase_engine = CoPurchaseEngine(self.view, self.settings)
        self.assembler = ResultAssembler(self.view, self.settings)

    def run(self) -> AnalysisResult:
        """
        Run every stage and return the result sets.

        Raises:
            MalformedRelationError: when an input relation is structurally invalid
        """
        with run_context() as run_id:
            return self._run(run_id)

    def _run(self, run_id: str) -> AnalysisResult:
        started_at = datetime.utcnow()
        validation: Dict[str, ValidationResult] = {}

        logger.info(
            "Starting behavioral analytics run",
            min_sample_size=self.settings.min_sample_size,
            precision=self.settings.precision,
        )

        if self.validate:
            validation = ensure_valid(self.relations)

        # Independent reductions, collected in parallel
        queries = [
            self.benchmark_calculator.query(Measure.REPURCHASE_CYCLE),
            self.benchmark_calculator.query(Measure.ORDER_SIZE),
        ]
        for entity_type, measure in GROUPS:
            queries.append(self.aggregator.query(entity_type, measure))
            queries.append(self.aggregator.excluded_query(entity_type, measure))
        queries.append(self.copurchase_engine.pair_counts_query())
        queries.append(self.copurchase_engine.anchor_order_counts_query())

        frames = pl.collect_all(queries)

        benchmarks = Benchmarks(
            repurchase_cycle=self.benchmark_calculator.resolve(Measure.REPURCHASE_CYCLE, frames[0]),
            order_size=self.benchmark_calculator.resolve(Measure.ORDER_SIZE, frames[1]),
        )

        results: Dict[str, pl.DataFrame] = {}
        excluded: Dict[str, pl.DataFrame] = {}
        for index, (entity_type, measure) in enumerate(GROUPS):
            key = result_key(entity_type, measure)
            excluded[key] = frames[3 + 2 * index]
            results[key] = self.normalizer.normalize(
                frames[2 + 2 * index], benchmarks.for_measure(measure), measure
            )
            logger.info("Result set computed", result=key, rows=len(results[key]), excluded=len(excluded[key]))

        warnings = collect_warnings(benchmarks, excluded, results, self.settings.min_sample_size)

        pairs, anchor_totals = frames[-2], frames[-1]
        copurchase = self.copurchase_engine.anchor_view(pairs=pairs, anchor_totals=anchor_totals)
        logger.info("Co-purchase result computed", pairs=len(pairs), rows=len(copurchase))

        export = self.assembler.assemble(
            copurchase,
            results["product_repurchase"],
            results["product_order_size"],
        )

        completed_at = datetime.utcnow()
        result = AnalysisResult(
            benchmarks=benchmarks,
            product_repurchase=self.assembler.label(results["product_repurchase"], EntityType.PRODUCT),
            product_order_size=self.assembler.label(results["product_order_size"], EntityType.PRODUCT),
            department_repurchase=self.assembler.label(results["department_repurchase"], EntityType.DEPARTMENT),
            department_order_size=self.assembler.label(results["department_order_size"], EntityType.DEPARTMENT),
            copurchase=copurchase,
            export=export,
            started_at=started_at,
            completed_at=completed_at,
            precision=self.settings.precision,
            warnings=warnings,
            validation=validation,
            run_id=run_id,
        )

        logger.info(
            "Behavioral analytics run complete",
            duration_seconds=round(result.duration_seconds, 3),
            export_rows=len(export),
            warnings=len(warnings),
        )
        return result


def run_analysis(
    relations: Relations,
    settings: Optional[AnalyticsSettings] = None,
) -> AnalysisResult:
    """Convenience function to run the pipeline with default options"""
    return AnalysisPipeline(relations, settings).run()
