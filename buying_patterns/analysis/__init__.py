"""
Behavioral Analysis Module
"""
from .aggregator import EntityType, GroupedMetricAggregator, Measure
from .assembler import ResultAssembler
from .benchmarks import Benchmark, BenchmarkCalculator, Benchmarks
from .copurchase import CoPurchaseEngine, canonical_pair
from .normalizer import LiftZScoreNormalizer, present
from .pipeline import AnalysisPipeline, AnalysisResult, collect_warnings, run_analysis

__all__ = [
    "EntityType",
    "Measure",
    "GroupedMetricAggregator",
    "ResultAssembler",
    "Benchmark",
    "BenchmarkCalculator",
    "Benchmarks",
    "CoPurchaseEngine",
    "canonical_pair",
    "LiftZScoreNormalizer",
    "present",
    "AnalysisPipeline",
    "AnalysisResult",
    "collect_warnings",
    "run_analysis",
]
