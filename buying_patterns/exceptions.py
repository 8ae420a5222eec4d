"""
Analysis Errors and Warnings

Structural problems with the input relations are fatal and raised as
exceptions. Statistical conditions (too few observations, zero spread,
empty benchmark scope) are expected outcomes; they are reported as
AnalysisWarning records and the run still completes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class AnalyticsError(Exception):
    """Base class for pipeline errors"""


class MalformedRelationError(AnalyticsError):
    """An input relation is missing or does not have the required shape"""

    def __init__(self, relation: str, problems: List[str]):
        self.relation = relation
        self.problems = problems
        super().__init__(f"Relation '{relation}' is malformed: {'; '.join(problems)}")

    def __reduce__(self):
        return type(self), (self.relation, self.problems)


class WarningKind(str, Enum):
    """Recoverable conditions raised during a run"""
    INSUFFICIENT_SAMPLE = "insufficient_sample"
    UNDEFINED_STATISTIC = "undefined_statistic"
    EMPTY_INPUT = "empty_input"


@dataclass
class AnalysisWarning:
    """A recoverable condition observed while computing a result set"""
    kind: WarningKind
    stage: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    affected: Optional[int] = None
