"""
Test Suite Configuration
"""
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import polars as pl
import pytest

from buying_patterns.config import AnalyticsSettings, Settings
from buying_patterns.data.relations import Relations, RelationView

# (days_since_prior_order, products in the order)
OrderTuple = Tuple[Optional[float], Sequence[int]]


def build_relations(
    orders: List[OrderTuple],
    product_departments: Optional[Dict[int, int]] = None,
) -> Relations:
    """
    Build a snapshot from a compact order list.

    Order ids are assigned sequentially from 1. Every product that appears
    gets a catalog row named "Product <id>"; its department (default 1)
    doubles as its aisle.
    """
    product_departments = dict(product_departments or {})
    order_rows = []
    line_rows = []

    for order_id, (days, products) in enumerate(orders, start=1):
        order_rows.append({
            "order_id": order_id,
            "user_id": 1,
            "order_number": order_id,
            "days_since_prior_order": days,
        })
        for product_id in products:
            line_rows.append({"order_id": order_id, "product_id": product_id})
            product_departments.setdefault(product_id, 1)

    department_ids = sorted(set(product_departments.values()))

    return Relations(
        orders=pl.DataFrame(
            order_rows,
            schema={
                "order_id": pl.Int64,
                "user_id": pl.Int64,
                "order_number": pl.Int64,
                "days_since_prior_order": pl.Float64,
            },
        ),
        order_products=pl.DataFrame(
            line_rows,
            schema={"order_id": pl.Int64, "product_id": pl.Int64},
        ),
        products=pl.DataFrame(
            [
                {
                    "product_id": product_id,
                    "product_name": f"Product {product_id}",
                    "aisle_id": department_id,
                    "department_id": department_id,
                }
                for product_id, department_id in sorted(product_departments.items())
            ],
            schema={
                "product_id": pl.Int64,
                "product_name": pl.Utf8,
                "aisle_id": pl.Int64,
                "department_id": pl.Int64,
            },
        ),
        departments=pl.DataFrame(
            {"department_id": department_ids, "department": [f"Department {d}" for d in department_ids]},
            schema={"department_id": pl.Int64, "department": pl.Utf8},
        ),
        aisles=pl.DataFrame(
            {"aisle_id": department_ids, "aisle": [f"Aisle {d}" for d in department_ids]},
            schema={"aisle_id": pl.Int64, "aisle": pl.Utf8},
        ),
    )


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(app_env="testing")


@pytest.fixture
def analytics_settings() -> AnalyticsSettings:
    """Default thresholds: 30 observations, 2 decimal places"""
    return AnalyticsSettings(min_sample_size=30, precision=2)


@pytest.fixture
def permissive_settings() -> AnalyticsSettings:
    """Thresholds that keep every group and pair"""
    return AnalyticsSettings(min_sample_size=1, precision=2)


@pytest.fixture
def relations_factory() -> Callable[..., Relations]:
    """Factory building a snapshot from (days, products) order tuples"""
    return build_relations


@pytest.fixture
def view_factory() -> Callable[..., RelationView]:
    """Factory building a memoized view from (days, products) order tuples"""
    def factory(orders: List[OrderTuple], product_departments: Optional[Dict[int, int]] = None) -> RelationView:
        return RelationView(build_relations(orders, product_departments))
    return factory


@pytest.fixture
def basket_scenario() -> Relations:
    """
    35 repeats of four orders: three containing products 1 and 2, one
    containing only product 1. Product 1 appears in 140 orders, product 2
    in 105, and every order repurchases after 7 days.
    """
    orders: List[OrderTuple] = []
    for _ in range(35):
        orders.extend([
            (7.0, [1, 2]),
            (7.0, [1, 2]),
            (7.0, [1, 2]),
            (7.0, [1]),
        ])
    return build_relations(orders, product_departments={1: 1, 2: 2})
