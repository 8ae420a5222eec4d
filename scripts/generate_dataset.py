"""
Synthetic Snapshot Generator
Writes an Instacart-shaped snapshot to data/generated for local runs
"""

import argparse
from pathlib import Path

from buying_patterns.config.logging import configure_logging
from buying_patterns.data import SnapshotGenerator

OUTPUT_DIR = Path(__file__).parent.parent / "data" / "generated"


def main():
    parser = argparse.ArgumentParser(description="Generate a synthetic order snapshot")
    parser.add_argument("--users", type=int, default=5000)
    parser.add_argument("--products", type=int, default=1000)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--format", default="csv", choices=["csv", "parquet"])
    parser.add_argument("--output", default=str(OUTPUT_DIR))
    args = parser.parse_args()

    configure_logging()

    written = SnapshotGenerator(seed=args.seed).generate_to(
        args.output,
        args.format,
        n_users=args.users,
        n_products=args.products,
    )

    print(f"\n📁 Output: {args.output}\n")
    for name, path in written.items():
        size = Path(path).stat().st_size / 1024 / 1024
        print(f"   📄 {name}: {path} ({size:.2f} MB)")


if __name__ == "__main__":
    main()
