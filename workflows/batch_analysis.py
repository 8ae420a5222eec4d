"""
Prefect Workflow Orchestration - Behavioral Analytics

Batch workflow recomputing every result set from a snapshot:
- Read the base relations (transient I/O failures are retried)
- Validate them (structural errors abort the flow, never retried)
- Benchmarks, grouped metrics and co-purchase counts as concurrent tasks
- Normalization, recoverable-condition warnings and export assembly
"""

from typing import Any, Dict, List, Optional, Tuple

import polars as pl
from prefect import flow, task, get_run_logger

from buying_patterns.analysis import (
    BenchmarkCalculator,
    Benchmarks,
    CoPurchaseEngine,
    EntityType,
    GroupedMetricAggregator,
    LiftZScoreNormalizer,
    ResultAssembler,
    collect_warnings,
    present,
)
from buying_patterns.analysis.pipeline import GROUPS, OUTPUT_NAMES, result_key, write_tables
from buying_patterns.config import get_settings
from buying_patterns.data import Relations, RelationView
from buying_patterns.exceptions import AnalysisWarning, MalformedRelationError
from buying_patterns.quality import ensure_valid

settings = get_settings()


def retry_unless_malformed(task, task_run, state) -> bool:
    """Retry condition: a malformed snapshot fails the same way every time"""
    try:
        state.result()
    except MalformedRelationError:
        return False
    except Exception:
        return True
    return True


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="load_relations",
    description="Read the snapshot relations",
    retries=2,
    retry_delay_seconds=30,
    retry_condition_fn=retry_unless_malformed,
)
def load_relations(source_dir: str, file_format: str) -> Relations:
    logger = get_run_logger()
    relations = Relations.from_directory(source_dir, file_format)
    logger.info(
        "Relations read: "
        + ", ".join(f"{name}={len(df)}" for name, df in relations.items())
    )
    return relations


@task(name="validate_relations", description="Structural validation of the base relations")
def validate_relations(relations: Relations) -> Relations:
    """Abort on ERROR checks, log WARNING checks"""
    logger = get_run_logger()
    results = ensure_valid(relations)
    logger.info(
        "Relations validated: "
        + ", ".join(f"{name}={result.status.value}" for name, result in results.items())
    )
    return relations


@task(name="compute_benchmarks", description="Global repurchase-cycle and order-size baselines")
def compute_benchmarks(view: RelationView) -> Benchmarks:
    logger = get_run_logger()
    benchmarks = BenchmarkCalculator(view, settings.analytics).compute()
    logger.info(
        f"Benchmarks: repurchase_cycle={benchmarks.repurchase_cycle.value}, "
        f"order_size={benchmarks.order_size.value}"
    )
    return benchmarks


@task(name="aggregate_metrics", description="Per-entity grouped metrics and below-threshold groups")
def aggregate_metrics(view: RelationView) -> Tuple[Dict[str, pl.DataFrame], Dict[str, pl.DataFrame]]:
    aggregator = GroupedMetricAggregator(view, settings.analytics)
    queries = []
    for entity_type, measure in GROUPS:
        queries.append(aggregator.query(entity_type, measure))
        queries.append(aggregator.excluded_query(entity_type, measure))
    frames = pl.collect_all(queries)

    metrics = {}
    excluded = {}
    for index, (entity_type, measure) in enumerate(GROUPS):
        key = result_key(entity_type, measure)
        metrics[key] = frames[2 * index]
        excluded[key] = frames[2 * index + 1]
    return metrics, excluded


@task(name="compute_copurchase", description="Pair counts and anchor percentages")
def compute_copurchase(view: RelationView) -> pl.DataFrame:
    logger = get_run_logger()
    copurchase = CoPurchaseEngine(view, settings.analytics).anchor_view()
    logger.info(f"Co-purchase pairs retained: {len(copurchase)}")
    return copurchase


@task(name="normalize_metrics", description="Lift and z-score per entity")
def normalize_metrics(
    metrics: Dict[str, pl.DataFrame],
    benchmarks: Benchmarks,
) -> Dict[str, pl.DataFrame]:
    normalizer = LiftZScoreNormalizer()
    return {
        result_key(entity_type, measure): normalizer.normalize(
            metrics[result_key(entity_type, measure)],
            benchmarks.for_measure(measure),
            measure,
        )
        for entity_type, measure in GROUPS
    }


@task(name="report_warnings", description="Recoverable conditions of the run")
def report_warnings(
    benchmarks: Benchmarks,
    excluded: Dict[str, pl.DataFrame],
    lifted: Dict[str, pl.DataFrame],
) -> List[AnalysisWarning]:
    logger = get_run_logger()
    warnings = collect_warnings(benchmarks, excluded, lifted, settings.analytics.min_sample_size)
    for warning in warnings:
        logger.warning(f"[{warning.kind.value}] {warning.stage}: {warning.message}")
    return warnings


@task(name="write_results", description="Assemble the export and write all result sets")
def write_results(
    view: RelationView,
    lifted: Dict[str, pl.DataFrame],
    copurchase: pl.DataFrame,
    output_dir: str,
    file_format: str,
) -> Dict[str, str]:
    logger = get_run_logger()
    assembler = ResultAssembler(view, settings.analytics)

    tables = {
        key: assembler.label(frame, EntityType.PRODUCT if key.startswith("product") else EntityType.DEPARTMENT)
        for key, frame in lifted.items()
    }
    tables["copurchase"] = copurchase
    tables["export"] = assembler.assemble(
        copurchase, lifted["product_repurchase"], lifted["product_order_size"]
    )

    written = write_tables(
        {OUTPUT_NAMES[key]: present(frame, settings.analytics.precision) for key, frame in tables.items()},
        output_dir,
        file_format,
    )

    logger.info(f"Wrote {len(written)} result sets to {output_dir}")
    return written


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="behavioral_analytics",
    description="Full recompute of buying-pattern metrics from a snapshot",
)
def behavioral_analytics(
    source_dir: Optional[str] = None,
    output_dir: Optional[str] = None,
    file_format: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Behavioral analytics pipeline.

    Steps:
    1. Read and validate relations
    2. Benchmarks, grouped metrics and co-purchase (concurrent)
    3. Lift / z-score normalization and warnings
    4. Assemble and write result sets

    Returns:
        {"written": output name -> path, "warnings": [AnalysisWarning, ...]}
    """
    logger = get_run_logger()

    source_dir = source_dir or settings.data.input_path
    output_dir = output_dir or settings.data.output_path
    file_format = file_format or settings.data.file_format

    logger.info(f"Starting behavioral analytics for {source_dir}")

    relations = validate_relations(load_relations(source_dir, file_format))
    view = RelationView(relations).materialize()

    benchmarks_future = compute_benchmarks.submit(view)
    metrics_future = aggregate_metrics.submit(view)
    copurchase_future = compute_copurchase.submit(view)

    benchmarks = benchmarks_future.result()
    metrics, excluded = metrics_future.result()
    lifted = normalize_metrics(metrics, benchmarks)
    warnings = report_warnings(benchmarks, excluded, lifted)

    written = write_results(view, lifted, copurchase_future.result(), output_dir, file_format)

    logger.info(f"Behavioral analytics complete: {len(written)} result sets, {len(warnings)} warnings")
    return {"written": written, "warnings": warnings}


if __name__ == "__main__":
    behavioral_analytics()
