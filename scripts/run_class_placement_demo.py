"""Demo runner: place a sample grade into classes from JSON.

This is meant for quick validation and for demos.

Usage:
    python scripts/run_class_placement_demo.py [path/to/problem.json]

"""

from __future__ import annotations

from pathlib import Path
import logging
import sys

import pandas as pd

# Ensure project root is on PYTHONPATH when running as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from class_placement import (
    assignment_frame,
    details_frame,
    format_violations_as_rows,
    load_class_problem_from_json,
    solve_class_placement,
)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    problem_path = Path(sys.argv[1]) if len(sys.argv) > 1 else ROOT / "data" / "sample_class_problem.json"
    problem = load_class_problem_from_json(str(problem_path))

    result = solve_class_placement(problem)

    pd.set_option("display.width", 160)

    print("\n=== Classes (best found) ===")
    print(assignment_frame(result.assignment).to_string(index=False))

    print("\n=== Score breakdown ===")
    print(details_frame(result.details).to_string(float_format=lambda v: f"{v:.4f}"))
    print(f"\nOverall score: {result.score:.4f}")

    if result.violations:
        print("\n=== Constraint violations ===")
        print(pd.DataFrame(format_violations_as_rows(result.violations)).to_string(index=False))

    print("\n=== Metrics ===")
    for k, v in result.metrics.items():
        print(f"{k}: {v}")


if __name__ == "__main__":
    main()
