import argparse
import logging
import time
from pathlib import Path

from timetable.config import load_config
from timetable.data_loader import load_school
from timetable.report import class_grid, export_outputs, format_workload, summarize_unresolved
from timetable.scheduler import TimetableScheduler


def print_class_grids(result, limit: int = 3):
    for class_name in list(result.timetables)[:limit]:
        print("\n" + "=" * 80)
        print(f"CLASS {class_name}")
        print("=" * 80)
        print(class_grid(result, class_name).to_string())


def main():
    parser = argparse.ArgumentParser(description="Generate weekly school timetables")
    parser.add_argument("--config", default="config.yaml", help="Solver configuration file")
    parser.add_argument("--data", default="data/school.json", help="School description (JSON or YAML)")
    parser.add_argument("--seed", type=int, default=None, help="Override the configured random seed")
    parser.add_argument("--out", default="outputs", help="Directory for CSV outputs")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING)")
    parser.add_argument("--show", type=int, default=3, help="Number of class grids to print")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    cfg = load_config(args.config)
    print("Loading school data...")
    bundle = load_school(args.data)
    for issue in bundle.issues:
        print(f"DATA ISSUE [{issue.kind}] {issue.message}")

    scheduler = TimetableScheduler(bundle.school, bundle.constraints, cfg, seed=args.seed)
    start = time.perf_counter()
    result = scheduler.generate()
    elapsed = time.perf_counter() - start

    for issue in result.issues:
        print(f"DATA ISSUE [{issue.kind}] {issue.message}")

    print("\n--- RESULT ---")
    print(f"Classes: {len(result.timetables)} | Seed: {result.seed} | Time: {elapsed:.2f}s")
    if result.unresolved:
        print("Generation complete with warnings: some lessons could not be scheduled.")
        for line in summarize_unresolved(result):
            print(f"  {line}")
    else:
        print("All lessons were scheduled successfully.")
    for c in result.collisions:
        print(f"  Event {c.event} collides with {c.occupant} for {c.class_name} on {c.day} p{c.period_id}")

    print("\n--- Teacher Workload Summary ---")
    for line in format_workload(result):
        print(f"  {line}")

    report = result.validation
    print(f"\nValidation: {'PASSED' if report.ok else 'FAILED'}")
    for v in report.violations:
        print(f"  {v}")
    for s in report.shortfalls:
        print(f"  shortfall: {s}")

    print_class_grids(result, args.show)

    out_dir = Path(args.out)
    export_outputs(result, out_dir, bundle.issues)
    print(f"\nResults saved to {out_dir}/timetable.csv, unresolved.csv, workload.csv")


if __name__ == "__main__":
    main()
