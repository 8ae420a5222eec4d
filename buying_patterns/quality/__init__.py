"""
Data Quality Module
"""
from .validators import DataValidator, ValidationResult, ensure_valid, validate_relations

__all__ = [
    "DataValidator",
    "ValidationResult",
    "ensure_valid",
    "validate_relations",
]
