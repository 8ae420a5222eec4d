"""
Data Validation Module

Structural validation of the input relations before any analysis runs.
Rule-based checks in the style of Great Expectations:
- Required columns present
- Key columns not null
- Key uniqueness
- Value ranges
- Referential integrity between relations

ERROR-severity failures make a relation unusable and abort the run;
WARNING-severity failures are logged and the run continues.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import polars as pl
import structlog

from buying_patterns.data.relations import REQUIRED_COLUMNS, Relations
from buying_patterns.exceptions import MalformedRelationError

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Critical - blocks pipeline
    WARNING = "warning"  # Non-critical - logged but continues


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def errors(self) -> List[ValidationCheck]:
        """Failed checks that block the pipeline"""
        return [c for c in self.checks if not c.passed and c.severity == ValidationSeverity.ERROR]


def _missing(columns: Sequence[str], df: pl.DataFrame) -> List[str]:
    return [c for c in columns if c not in df.columns]


class DataValidator:
    """
    Data validator with a chainable check suite.

    Example:
        validator = DataValidator()
        validator.add_not_null_check("order_id")
        validator.add_unique_check("order_id")
        result = validator.validate(df)
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def add_required_columns_check(
        self,
        columns: Sequence[str],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that all listed columns exist"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            missing = _missing(columns, df)
            return ValidationCheck(
                name="required_columns",
                passed=not missing,
                severity=severity,
                message=f"Missing columns: {missing}" if missing else "All required columns present",
                details={"missing": missing},
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return ValidationCheck(
                    name=f"not_null_{column}",
                    passed=False,
                    severity=severity,
                    message=f"Column '{column}' not found",
                )

            null_count = df[column].null_count()
            total = len(df)
            passed = null_count == 0

            return ValidationCheck(
                name=f"not_null_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count, "null_percentage": (null_count / total) * 100 if total > 0 else 0},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        columns: Union[str, Sequence[str]],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for uniqueness of a column or column combination"""
        columns = [columns] if isinstance(columns, str) else list(columns)
        name = f"unique_{'_'.join(columns)}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            missing = _missing(columns, df)
            if missing:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Columns {missing} not found",
                )

            total = len(df)
            unique_count = df.select(columns).unique().height
            duplicate_count = total - unique_count
            passed = duplicate_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"{columns} has {duplicate_count} duplicate values" if not passed else f"{columns} values are unique",
                details={"unique_count": unique_count, "duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for non-null values within specified range"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return ValidationCheck(
                    name=f"range_{column}",
                    passed=False,
                    severity=severity,
                    message=f"Column '{column}' not found",
                )

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(
                    name=f"range_{column}",
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            combined = conditions[0]
            for cond in conditions[1:]:
                combined = combined | cond

            out_of_range = df.filter(combined).height
            total = len(df)
            passed = out_of_range == 0

            return ValidationCheck(
                name=f"range_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add referential integrity check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns or reference_column not in reference_df.columns:
                return ValidationCheck(
                    name=f"ref_integrity_{column}",
                    passed=False,
                    severity=severity,
                    message=f"Column '{column}' not found",
                )

            orphans = df.filter(
                ~pl.col(column).is_in(reference_df[reference_column].unique().to_list()) & pl.col(column).is_not_null()
            ).height
            total = len(df)
            passed = orphans == 0

            return ValidationCheck(
                name=f"ref_integrity_{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {orphans} orphan records" if not passed else "Referential integrity maintained",
                details={"orphan_count": orphans},
                failed_rows=orphans,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()
        results = []

        logger.debug(f"Running {len(self._checks)} validation checks on {len(df)} rows")

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    message=result.message,
                    severity=result.severity.value,
                )

        completed_at = datetime.utcnow()

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        return ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=completed_at,
        )


# Pre-built validators for the base relations
def create_orders_validator() -> DataValidator:
    """Create pre-configured validator for orders"""
    return (
        DataValidator()
        .add_required_columns_check(REQUIRED_COLUMNS["orders"])
        .add_not_null_check("order_id")
        .add_unique_check("order_id")
        .add_range_check("days_since_prior_order", min_value=0)
    )


def create_order_products_validator(relations: Relations) -> DataValidator:
    """Create pre-configured validator for order lines"""
    return (
        DataValidator()
        .add_required_columns_check(REQUIRED_COLUMNS["order_products"])
        .add_not_null_check("order_id")
        .add_not_null_check("product_id")
        .add_unique_check(["order_id", "product_id"], severity=ValidationSeverity.WARNING)
        .add_referential_integrity_check(
            "product_id", relations.products, "product_id", severity=ValidationSeverity.WARNING
        )
    )


def create_products_validator(relations: Relations) -> DataValidator:
    """Create pre-configured validator for products"""
    return (
        DataValidator()
        .add_required_columns_check(REQUIRED_COLUMNS["products"])
        .add_not_null_check("product_id")
        .add_unique_check("product_id")
        .add_referential_integrity_check(
            "department_id", relations.departments, "department_id", severity=ValidationSeverity.WARNING
        )
        .add_referential_integrity_check(
            "aisle_id", relations.aisles, "aisle_id", severity=ValidationSeverity.WARNING
        )
    )


def create_dimension_validator(key: str, columns: Sequence[str]) -> DataValidator:
    """Create pre-configured validator for a lookup dimension"""
    return (
        DataValidator()
        .add_required_columns_check(columns)
        .add_not_null_check(key)
        .add_unique_check(key)
    )


def validate_relations(relations: Relations) -> Dict[str, ValidationResult]:
    """Run the pre-built validator of every base relation"""
    validators = {
        "orders": create_orders_validator(),
        "order_products": create_order_products_validator(relations),
        "products": create_products_validator(relations),
        "departments": create_dimension_validator("department_id", REQUIRED_COLUMNS["departments"]),
        "aisles": create_dimension_validator("aisle_id", REQUIRED_COLUMNS["aisles"]),
    }
    results = {name: validators[name].validate(df) for name, df in relations.items()}

    logger.info(
        "Relations validated",
        **{name: result.status.value for name, result in results.items()},
    )
    return results


def ensure_valid(relations: Relations) -> Dict[str, ValidationResult]:
    """
    Validate all relations and abort on structural errors.

    Raises:
        MalformedRelationError: for the first relation with an ERROR failure
    """
    results = validate_relations(relations)
    for name, result in results.items():
        if result.errors:
            raise MalformedRelationError(name, [c.message for c in result.errors])
    return results
