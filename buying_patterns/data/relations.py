"""
Data Access Layer

Read-only access to the five base relations of an order snapshot and
memoized views derived from them.

Relations:
- orders: one row per order, with days since the customer's prior order
- order_products: order lines (order, product)
- products, departments, aisles: lookup dimensions
"""

from dataclasses import dataclass, fields
from enum import Enum
from functools import cached_property
from pathlib import Path
from typing import Dict, List, Optional, Union

import polars as pl
import structlog

from buying_patterns.exceptions import MalformedRelationError

logger = structlog.get_logger(__name__)


class FileFormat(str, Enum):
    """Supported snapshot file formats"""
    CSV = "csv"
    PARQUET = "parquet"


REQUIRED_COLUMNS: Dict[str, List[str]] = {
    "orders": ["order_id", "user_id", "order_number", "days_since_prior_order"],
    "order_products": ["order_id", "product_id"],
    "products": ["product_id", "product_name", "aisle_id", "department_id"],
    "departments": ["department_id", "department"],
    "aisles": ["aisle_id", "aisle"],
}

# Alternative file stems accepted for each relation, in lookup order
FILE_STEMS: Dict[str, List[str]] = {
    "orders": ["orders"],
    "order_products": ["order_products", "order_products__prior"],
    "products": ["products"],
    "departments": ["departments"],
    "aisles": ["aisles"],
}

SCHEMA_OVERRIDES: Dict[str, Dict[str, pl.DataType]] = {
    "orders": {"days_since_prior_order": pl.Float64},
}

NULL_VALUES = ["", "NULL", "null", "None", "NA", "N/A"]


@dataclass(frozen=True)
class Relations:
    """
    Immutable snapshot of the base relations.

    Example:
        relations = Relations.from_directory("data/raw")
        view = RelationView(relations)
    """
    orders: pl.DataFrame
    order_products: pl.DataFrame
    products: pl.DataFrame
    departments: pl.DataFrame
    aisles: pl.DataFrame

    @classmethod
    def names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def items(self):
        for name in self.names():
            yield name, getattr(self, name)

    @classmethod
    def from_directory(
        cls,
        directory: Union[str, Path],
        file_format: Union[str, FileFormat] = FileFormat.CSV,
    ) -> "Relations":
        """
        Read all relations from a snapshot directory.

        Raises:
            MalformedRelationError: if a relation file is missing
        """
        directory = Path(directory)
        file_format = FileFormat(file_format)
        frames = {}

        for name in cls.names():
            path = _find_relation_file(directory, name, file_format)
            if path is None:
                raise MalformedRelationError(
                    name,
                    [f"no {file_format.value} file named any of {FILE_STEMS[name]} in {directory}"],
                )
            frames[name] = _read_relation(path, name, file_format)
            logger.info("Relation loaded", relation=name, rows=len(frames[name]), file=str(path))

        return cls(**frames)

    def write(
        self,
        directory: Union[str, Path],
        file_format: Union[str, FileFormat] = FileFormat.CSV,
    ) -> Dict[str, str]:
        """Write every relation to directory, one file per relation"""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        file_format = FileFormat(file_format)
        written = {}

        for name, df in self.items():
            path = directory / f"{name}.{file_format.value}"
            if file_format == FileFormat.PARQUET:
                df.write_parquet(path)
            else:
                df.write_csv(path)
            written[name] = str(path)

        logger.info("Relations written", directory=str(directory), files=len(written))
        return written


def _find_relation_file(directory: Path, name: str, file_format: FileFormat) -> Optional[Path]:
    for stem in FILE_STEMS[name]:
        candidate = directory / f"{stem}.{file_format.value}"
        if candidate.exists():
            return candidate
    return None


def _read_relation(path: Path, name: str, file_format: FileFormat) -> pl.DataFrame:
    if file_format == FileFormat.PARQUET:
        df = pl.read_parquet(path)
        overrides = SCHEMA_OVERRIDES.get(name, {})
        present = {col: dtype for col, dtype in overrides.items() if col in df.columns}
        return df.cast(present) if present else df

    return pl.read_csv(
        path,
        null_values=NULL_VALUES,
        infer_schema_length=10000,
        schema_overrides=SCHEMA_OVERRIDES.get(name),
    )


class RelationView:
    """
    Memoized intermediate views over one Relations snapshot.

    Each view is computed on first access and reused by every stage of the
    run. The snapshot never changes during a run; refresh() forces the next
    access to recompute.
    """

    _CACHED = (
        "order_lines",
        "order_sizes",
        "repurchase_events",
        "order_size_observations",
        "product_dimensions",
    )

    def __init__(self, relations: Relations):
        self.relations = relations

    def refresh(self) -> None:
        """Drop all memoized views"""
        for name in self._CACHED:
            self.__dict__.pop(name, None)

    def materialize(self) -> "RelationView":
        """Compute every view now, before the view is shared between threads"""
        for name in self._CACHED:
            getattr(self, name)
        return self

    @cached_property
    def order_lines(self) -> pl.DataFrame:
        """Order lines de-duplicated per (order, product)"""
        lines = self.relations.order_products.select(["order_id", "product_id"])
        unique = lines.unique()
        duplicates = len(lines) - len(unique)
        if duplicates:
            logger.warning("Duplicate order lines collapsed", duplicates=duplicates)
        return unique

    @cached_property
    def order_sizes(self) -> pl.DataFrame:
        """Distinct products per order, for orders with at least one line"""
        return self.order_lines.group_by("order_id").agg(
            pl.len().cast(pl.Int64).alias("order_size")
        )

    @cached_property
    def repurchase_events(self) -> pl.DataFrame:
        """
        One row per (order, product) line of a non-first order.

        Columns: order_id, product_id, department_id, days_since_prior_order
        """
        orders = self.relations.orders.select(["order_id", "days_since_prior_order"]).filter(
            pl.col("days_since_prior_order").is_not_null()
        )
        return (
            self.order_lines
            .join(orders, on="order_id", how="inner")
            .join(self._product_departments(), on="product_id", how="left")
            .select(["order_id", "product_id", "department_id", "days_since_prior_order"])
        )

    @cached_property
    def order_size_observations(self) -> pl.DataFrame:
        """
        One row per (order, product) line carrying the order's size.

        Columns: order_id, product_id, department_id, order_size
        """
        return (
            self.order_lines
            .join(self.order_sizes, on="order_id", how="inner")
            .join(self._product_departments(), on="product_id", how="left")
            .select(["order_id", "product_id", "department_id", "order_size"])
        )

    @cached_property
    def product_dimensions(self) -> pl.DataFrame:
        """Product names with their department and aisle names"""
        return (
            self.relations.products
            .select(["product_id", "product_name", "department_id", "aisle_id"])
            .join(self.relations.departments.select(["department_id", "department"]), on="department_id", how="left")
            .join(self.relations.aisles.select(["aisle_id", "aisle"]), on="aisle_id", how="left")
        )

    def _product_departments(self) -> pl.DataFrame:
        return self.relations.products.select(["product_id", "department_id"])
