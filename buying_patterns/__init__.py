"""
Instacart Behavioral Buying Patterns

Batch analytics over a retail order snapshot: repurchase-cycle and
order-size benchmarks, lift and z-score metrics, and co-purchase
associations for dashboard consumption.
"""

__version__ = "1.0.0"
