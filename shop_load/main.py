from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from . import engine
from .io_utils import (
    ensure_directory,
    load_inputs,
    parse_optional_date,
    weekly_load_frame,
    write_csv,
    write_summary_json,
)
from .models import ForecastOptions, ForecastSummary


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Shop load forecast (CSV/JSON in, weekly load out)."
    )
    parser.add_argument(
        "--project-dir",
        help="Project directory containing input/ and output/ subfolders",
    )
    parser.add_argument("--projects", help="Path to committed projects CSV (overrides project-dir default)")
    parser.add_argument("--pending", help="Path to pending bids CSV (overrides project-dir default)")
    parser.add_argument("--settings", help="Path to company settings JSON (overrides project-dir default)")
    parser.add_argument(
        "--outdir",
        default=None,
        help="Output directory for generated files (default: <project-dir>/output or ./out)",
    )
    parser.add_argument(
        "--shift-multiplier",
        type=float,
        default=1.0,
        help="Scale weekly capacity to model added shifts or overtime",
    )
    parser.add_argument("--weeks", type=int, help="Forecast horizon in weeks (default from settings)")
    parser.add_argument("--start-date", help="ISO date anchoring week 0 (default: today)")
    parser.add_argument("--threshold", type=float, help="Under-utilization threshold override")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Forecast and print the weekly table without writing output files",
    )
    return parser.parse_args(argv)


def _resolve_io_paths(args: argparse.Namespace) -> Tuple[Path, Optional[Path], Path, Path]:
    project_dir = Path(args.project_dir).resolve() if args.project_dir else None
    if project_dir and not project_dir.exists():
        raise ValueError(f"project directory not found: {project_dir}")
    input_dir = project_dir / "input" if project_dir else None

    def _pick(path_value: Optional[str], default_name: str) -> Optional[Path]:
        if path_value:
            return Path(path_value)
        if input_dir:
            return input_dir / default_name
        return None

    projects_path = _pick(args.projects, "projects.csv")
    pending_path = _pick(args.pending, "pending.csv")
    settings_path = _pick(args.settings, "settings.json")

    missing = [
        name
        for name, value in (("projects", projects_path), ("settings", settings_path))
        if value is None
    ]
    if missing:
        joined = ", ".join(f"--{name}" for name in missing)
        raise ValueError(f"missing required input paths: {joined} (or provide --project-dir)")

    for label, path in (("projects", projects_path), ("settings", settings_path)):
        if not path.exists():
            raise ValueError(f"{label} file not found at {path}")
    if args.pending and not Path(args.pending).exists():
        raise ValueError(f"pending file not found at {args.pending}")

    if args.outdir:
        outdir = Path(args.outdir)
    elif project_dir:
        outdir = project_dir / "output"
    else:
        outdir = Path("out")

    return projects_path, pending_path, settings_path, outdir


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")


def _options_from_args(args: argparse.Namespace) -> ForecastOptions:
    if args.weeks is not None and args.weeks <= 0:
        raise ValueError("--weeks must be a positive integer")
    if args.threshold is not None and not (0 < args.threshold <= 1):
        raise ValueError("--threshold must be in (0, 1]")
    return ForecastOptions(
        shift_multiplier=args.shift_multiplier,
        weeks=args.weeks,
        start_date=parse_optional_date(args.start_date, "--start-date"),
    )


def _print_dry_run_summary(summary: ForecastSummary) -> None:
    print(
        f"Weekly capacity {summary.weekly_capacity:.1f} h "
        f"(shift x{summary.scenario.shift_multiplier:g}, {summary.scenario.weeks} weeks)"
    )
    for bucket in summary.buckets:
        utilization = bucket.utilization()
        pct = f"{utilization * 100:5.1f}%" if utilization is not None else "  n/a"
        print(
            f"- W{bucket.week_index:02d} {bucket.start_date:%Y-%m-%d}: "
            f"{bucket.used_hours:8.1f} / {bucket.capacity_hours:.1f} h ({pct})"
        )
    print(
        f"\nCommitted {summary.total_committed_hours:.1f} h, pending {summary.total_pending_hours:.1f} h, "
        f"backlog {summary.backlog_months:.2f} months"
    )
    if summary.unallocated:
        print("\nUnscheduled demand:")
        for item in summary.unallocated:
            print(f"- {item.project_id} {item.name} ({item.kind}): {item.hours:.1f} h, {item.reason}")
    else:
        print("\nUnscheduled demand: none")


def _write_gaps_markdown(summary: ForecastSummary, outdir: Path) -> Path:
    path = outdir / "booking_gaps.md"
    lines: List[str] = ["# Booking Gaps", ""]
    if not summary.recommendations:
        lines.append("No under-utilized weeks in the forecast horizon.")
    else:
        for gap, rec in zip(summary.gaps, summary.recommendations):
            lines.append(
                f"- **Week {rec.week_index} ({rec.start_date:%Y-%m-%d} – {rec.end_date:%Y-%m-%d})**"
            )
            lines.append(f"  - Utilization: {gap.utilization * 100:.1f}%")
            lines.append(f"  - Available: {rec.available_hours:.1f} h")
            lines.append(
                f"  - Book: {rec.suggested_min_hours:.1f}–{rec.suggested_max_hours:.1f} h"
            )
    lines.extend(["", "# Unscheduled Demand", ""])
    if not summary.unallocated:
        lines.append("All demand fits within the forecast horizon.")
    else:
        lines.append(
            f"{summary.unallocated_hours():.1f} h could not be scheduled within the visible horizon."
        )
        lines.append("")
        for item in summary.unallocated:
            lines.append(f"- **{item.project_id} – {item.name}** ({item.kind})")
            lines.append(f"  - Hours: {item.hours:.1f}")
            lines.append(f"  - Reason: {item.reason}")
    if summary.overloads:
        lines.extend(["", "# Overloaded Weeks", ""])
        for bucket in summary.overloads:
            lines.append(
                f"- Week {bucket.week_index}: {bucket.used_hours:.1f} / {bucket.capacity_hours:.1f} h"
            )
    path.write_text("\n".join(lines).strip() + "\n")
    return path


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    try:
        projects_path, pending_path, settings_path, outdir = _resolve_io_paths(args)
        committed, pending, settings = load_inputs(projects_path, pending_path, settings_path)
        options = _options_from_args(args)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)

    _configure_logging(settings.logging_level)
    summary = engine.build_forecast(committed, pending, settings, options, args.threshold)

    if args.dry_run:
        _print_dry_run_summary(summary)
        return

    outdir_path = ensure_directory(outdir)
    load_path = outdir_path / "weekly_load.csv"
    forecast_path = outdir_path / "forecast.json"
    write_csv(weekly_load_frame(summary), load_path)
    write_summary_json(summary, forecast_path)
    gaps_path = _write_gaps_markdown(summary, outdir_path)
    print(f"Wrote {load_path}")
    print(f"Wrote {forecast_path}")
    print(f"Wrote {gaps_path}")
    if summary.unallocated:
        print(f"{summary.unallocated_hours():.1f} h could not be scheduled within {summary.scenario.weeks} weeks")


if __name__ == "__main__":
    main()
