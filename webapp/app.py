from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from flask import Flask, jsonify, request

from shop_load import engine
from shop_load.io_utils import (
    bids_from_records,
    context_from_dict,
    demands_from_records,
    load_inputs,
    options_from_dict,
    parse_optional_date,
    settings_from_dict,
    summary_to_dict,
)
from shop_load.pipeline import calculate_bid_forecast

REQUIRED_INPUT_FILES = ("projects.csv", "settings.json")
OPTIONAL_INPUT_FILES = ("pending.csv",)


def _default_projects_root() -> Path:
    return (Path(__file__).resolve().parent.parent / "portfolios").resolve()


def _resolve_projects_root() -> Path:
    env_value = os.getenv("PROJECTS_ROOT")
    if env_value:
        return Path(env_value).expanduser().resolve()
    return _default_projects_root()


def _validate_within_root(path: Path, root: Path) -> None:
    try:
        path.relative_to(root)
    except ValueError as exc:
        raise ValueError(f"Portfolio directory must be inside {root}") from exc


def _check_input_dir(project_dir: Path) -> Tuple[Path, List[str]]:
    input_dir = project_dir / "input"
    missing: List[str] = []
    if not input_dir.is_dir():
        missing.extend(list(REQUIRED_INPUT_FILES))
        return input_dir, missing
    for name in REQUIRED_INPUT_FILES:
        if not (input_dir / name).is_file():
            missing.append(name)
    return input_dir, missing


def _resolve_project_dir(raw_value: str, root: Path) -> Path:
    if not raw_value:
        raise ValueError("project_dir is required")
    project_dir = (root / raw_value).resolve()
    _validate_within_root(project_dir, root)
    if not project_dir.is_dir():
        raise ValueError(f"Portfolio directory not found: {raw_value}")
    input_dir, missing = _check_input_dir(project_dir)
    if missing:
        missing_list = ", ".join(missing)
        raise ValueError(
            f"Portfolio directory must contain input files at {input_dir}: missing {missing_list}"
        )
    return project_dir


def _list_project_dirs(root: Path) -> List[Dict[str, object]]:
    entries: List[Dict[str, object]] = []
    if not root.exists():
        return entries
    for child in sorted(root.iterdir()):
        if not child.is_dir():
            continue
        input_dir, missing = _check_input_dir(child)
        entries.append(
            {
                "name": child.relative_to(root).as_posix(),
                "input_dir": input_dir.as_posix(),
                "has_pending": (input_dir / OPTIONAL_INPUT_FILES[0]).is_file(),
                "is_valid": not missing,
            }
        )
    return entries


def _request_payload() -> Dict[str, object]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("request body must be a JSON object")
    return data


def _optional_threshold(data: Dict[str, object]) -> Optional[float]:
    threshold = data.get("threshold")
    if threshold is None:
        return None
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise ValueError("threshold must be a number")
    return float(threshold)


def create_app() -> Flask:
    app = Flask(__name__)
    projects_root = _resolve_projects_root()
    app.config["PROJECTS_ROOT"] = projects_root

    @app.get("/dirs")
    def directories():
        return jsonify({"projects": _list_project_dirs(projects_root)})

    @app.post("/forecast")
    def forecast():
        try:
            data = _request_payload()
            summary = engine.build_forecast(
                demands_from_records(data.get("projects", [])),
                demands_from_records(data.get("pending_projects", data.get("pendingBids", []))),
                settings_from_dict(data.get("settings") or {}),
                options_from_dict(data.get("options")),
                _optional_threshold(data),
            )
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        return jsonify(summary_to_dict(summary))

    @app.post("/scenarios")
    def scenarios():
        try:
            data = _request_payload()
            multipliers = data.get("shift_multipliers")
            if not isinstance(multipliers, list) or not multipliers:
                raise ValueError("shift_multipliers must be a non-empty array")
            if any(isinstance(m, bool) or not isinstance(m, (int, float)) for m in multipliers):
                raise ValueError("shift_multipliers must contain numbers")
            summaries = engine.compare_scenarios(
                demands_from_records(data.get("projects", [])),
                demands_from_records(data.get("pending_projects", [])),
                settings_from_dict(data.get("settings") or {}),
                [float(m) for m in multipliers],
                options_from_dict(data.get("options")),
                _optional_threshold(data),
            )
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        return jsonify({"scenarios": [summary_to_dict(summary) for summary in summaries]})

    @app.get("/api/forecast/<portfolio_name>")
    def portfolio_forecast(portfolio_name: str):
        try:
            project_dir = _resolve_project_dir(portfolio_name, projects_root)
            input_dir = project_dir / "input"
            committed, pending, settings = load_inputs(
                input_dir / "projects.csv",
                input_dir / "pending.csv",
                input_dir / "settings.json",
            )
            options = options_from_dict(
                {
                    "shift_multiplier": request.args.get("shift_multiplier", 1.0, type=float),
                    "weeks": request.args.get("weeks", type=int),
                    "start_date": request.args.get("start_date"),
                }
            )
            summary = engine.build_forecast(
                committed, pending, settings, options, request.args.get("threshold", type=float)
            )
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        return jsonify(summary_to_dict(summary))

    @app.post("/pipeline")
    def pipeline():
        try:
            data = _request_payload()
            horizon = data.get("date_horizon_days")
            if horizon is not None and (isinstance(horizon, bool) or not isinstance(horizon, int)):
                raise ValueError("date_horizon_days must be an integer")
            totals = calculate_bid_forecast(
                bids_from_records(data.get("bids", [])),
                context_from_dict(data.get("context")),
                active_only=bool(data.get("active_only", True)),
                date_horizon_days=horizon,
                today=parse_optional_date(data.get("today"), "today"),
            )
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        return jsonify(totals.to_dict())

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
