"""
Synthetic Snapshot Generator

Generates an Instacart-shaped order snapshot for demos and tests.
Includes:
- Departments and aisles
- A product catalog with skewed popularity
- Customers with sequential order histories and repeat favorites
- Order lines drawn from each customer's habits
"""

import random
from pathlib import Path
from typing import Dict, List, Tuple, Union

import numpy as np
import polars as pl
import structlog
from faker import Faker

from .relations import FileFormat, Relations

logger = structlog.get_logger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

DEPARTMENTS = [
    ("produce", ["fresh fruits", "fresh vegetables", "packaged vegetables fruits", "fresh herbs"]),
    ("dairy eggs", ["milk", "eggs", "yogurt", "packaged cheese", "butter"]),
    ("bakery", ["bread", "breakfast bakery", "buns rolls"]),
    ("beverages", ["water seltzer sparkling water", "juice nectars", "coffee", "tea"]),
    ("snacks", ["chips pretzels", "crackers", "cookies cakes", "nuts seeds dried fruit"]),
    ("frozen", ["frozen meals", "ice cream ice", "frozen produce"]),
    ("pantry", ["baking ingredients", "spices seasonings", "oils vinegars"]),
    ("household", ["paper goods", "cleaning products", "laundry"]),
    ("babies", ["diapers wipes", "baby food formula"]),
    ("pets", ["cat food care", "dog food care"]),
]

MAX_DAYS_SINCE_PRIOR = 30  # Instacart caps the gap at 30 days


# =============================================================================
# GENERATORS
# =============================================================================

class CatalogGenerator:
    """Generate departments, aisles and products"""

    def __init__(self, seed: int = 42):
        self.rng = random.Random(seed)
        self.fake = Faker()
        self.fake.seed_instance(seed)

    def generate(self, n_products: int = 500) -> Tuple[pl.DataFrame, pl.DataFrame, pl.DataFrame]:
        """Generate (departments, aisles, products)"""
        departments = []
        aisles = []
        aisle_department: Dict[int, int] = {}

        for department_id, (department, aisle_names) in enumerate(DEPARTMENTS, start=1):
            departments.append({"department_id": department_id, "department": department})
            for aisle in aisle_names:
                aisle_id = len(aisles) + 1
                aisles.append({"aisle_id": aisle_id, "aisle": aisle})
                aisle_department[aisle_id] = department_id

        products = []
        for product_id in range(1, n_products + 1):
            aisle = self.rng.choice(aisles)
            products.append({
                "product_id": product_id,
                "product_name": f"{self.fake.word().title()} {aisle['aisle'].title()}",
                "aisle_id": aisle["aisle_id"],
                "department_id": aisle_department[aisle["aisle_id"]],
            })

        return pl.DataFrame(departments), pl.DataFrame(aisles), pl.DataFrame(products)


class OrderHistoryGenerator:
    """Generate customers' order sequences and basket contents"""

    def __init__(self, product_ids: List[int], seed: int = 42):
        self.product_ids = np.asarray(product_ids)
        self.np_rng = np.random.default_rng(seed)

        # Zipf-like popularity so a few products dominate baskets
        ranks = np.arange(1, len(self.product_ids) + 1)
        weights = 1.0 / ranks
        self.popularity = weights / weights.sum()

    def _basket(self, favorites: np.ndarray, size: int) -> List[int]:
        n_favorites = min(len(favorites), self.np_rng.binomial(size, 0.6))
        picked = set(self.np_rng.choice(favorites, size=n_favorites, replace=False).tolist())
        while len(picked) < size:
            picked.add(int(self.np_rng.choice(self.product_ids, p=self.popularity)))
        return sorted(picked)

    def generate(
        self,
        n_users: int = 1000,
        min_orders: int = 4,
        max_orders: int = 20,
        mean_basket_size: float = 8.0,
    ) -> Tuple[pl.DataFrame, pl.DataFrame]:
        """Generate (orders, order_products)"""
        orders = []
        order_products = []
        max_basket = len(self.product_ids)

        for user_id in range(1, n_users + 1):
            n_orders = int(self.np_rng.integers(min_orders, max_orders + 1))
            cadence = float(self.np_rng.uniform(4, 25))
            n_favorites = min(max_basket, int(self.np_rng.integers(3, 15)))
            favorites = self.np_rng.choice(
                self.product_ids, size=n_favorites, replace=False, p=self.popularity
            )

            for order_number in range(1, n_orders + 1):
                order_id = len(orders) + 1

                if order_number == 1:
                    days_since_prior = None
                else:
                    gap = self.np_rng.normal(cadence, cadence / 3)
                    days_since_prior = float(np.clip(round(gap), 0, MAX_DAYS_SINCE_PRIOR))

                orders.append({
                    "order_id": order_id,
                    "user_id": user_id,
                    "eval_set": "prior",
                    "order_number": order_number,
                    "order_dow": int(self.np_rng.integers(0, 7)),
                    "order_hour_of_day": int(self.np_rng.integers(7, 23)),
                    "days_since_prior_order": days_since_prior,
                })

                size = int(np.clip(self.np_rng.poisson(mean_basket_size - 1) + 1, 1, max_basket))
                for position, product_id in enumerate(self._basket(favorites, size), start=1):
                    order_products.append({
                        "order_id": order_id,
                        "product_id": product_id,
                        "add_to_cart_order": position,
                        "reordered": int(order_number > 1 and product_id in favorites),
                    })

        orders_df = pl.DataFrame(orders, schema_overrides={"days_since_prior_order": pl.Float64})
        return orders_df, pl.DataFrame(order_products)


# =============================================================================
# MAIN GENERATOR
# =============================================================================

class SnapshotGenerator:
    """
    Main snapshot generator orchestrator.

    The same seed always produces the same snapshot.

    Example:
        relations = SnapshotGenerator(seed=7).generate(n_users=500)
    """

    def __init__(self, seed: int = 42):
        self.seed = seed

    def generate(
        self,
        n_users: int = 1000,
        n_products: int = 500,
        min_orders: int = 4,
        max_orders: int = 20,
        mean_basket_size: float = 8.0,
    ) -> Relations:
        """Generate a complete snapshot"""
        logger.info(
            "Generating synthetic snapshot",
            users=n_users,
            products=n_products,
            seed=self.seed,
        )

        departments, aisles, products = CatalogGenerator(self.seed).generate(n_products)
        orders, order_products = OrderHistoryGenerator(
            products["product_id"].to_list(), self.seed
        ).generate(n_users, min_orders, max_orders, mean_basket_size)

        relations = Relations(
            orders=orders,
            order_products=order_products,
            products=products,
            departments=departments,
            aisles=aisles,
        )

        logger.info(
            "Snapshot generated",
            orders=len(orders),
            order_lines=len(order_products),
        )
        return relations

    def generate_to(
        self,
        output_dir: Union[str, Path],
        file_format: Union[str, FileFormat] = FileFormat.CSV,
        **kwargs,
    ) -> Dict[str, str]:
        """Generate a snapshot and write it to output_dir"""
        return self.generate(**kwargs).write(output_dir, file_format)
