from __future__ import annotations

import json
import math
from dataclasses import asdict
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
from dateutil import parser as dateparser

from .models import (
    DEFAULT_FORECAST_WEEKS,
    DEFAULT_UNDER_UTILIZED_THRESHOLD,
    CompanySettings,
    ForecastOptions,
    ForecastSummary,
    ProjectDemand,
    resolve_remaining_hours,
)
from .pipeline import BID_STAGES, BID_STATUSES, Bid, ForecastContext

DATE_FMT = "%Y-%m-%d"

_PROJECT_REQUIRED_COLUMNS = {"id", "name"}
_HOURS_COLUMNS = ("remaining_shop_hours", "estimated_shop_hours_total")
_DATE_COLUMNS = ("scheduled_start_date", "projected_start_date")

# Document-store field names accepted alongside the snake_case ones.
_RECORD_ALIASES = {
    "projectName": "name",
    "remainingShopHours": "remaining_shop_hours",
    "estimatedShopHoursTotal": "estimated_shop_hours_total",
    "scheduledStartDate": "scheduled_start_date",
    "projectedStartDate": "projected_start_date",
}
_SETTINGS_ALIASES = {
    "shopCapacityHoursPerWeek": "shop_capacity_hours_per_week",
    "backlogForecastWeeks": "backlog_forecast_weeks",
    "underUtilizedThreshold": "under_utilized_threshold",
    "loggingLevel": "logging_level",
}
_OPTIONS_ALIASES = {
    "shiftMultiplier": "shift_multiplier",
    "startDate": "start_date",
}


def _require_columns(df: pd.DataFrame, required: Iterable[str], source: str) -> None:
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise ValueError(f"{source} missing required columns: {', '.join(sorted(missing))}")


def _is_blank(value: object) -> bool:
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return False
    return value is None or bool(pd.isna(value))


def _parse_bool(value: object, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if _is_blank(value):
        return False
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "t", "1", "yes", "y"}:
            return True
        if lowered in {"false", "f", "0", "no", "n"}:
            return False
    raise ValueError(f"cannot interpret boolean value '{value}' in '{field_name}'")


def parse_optional_date(value: object, field_name: str) -> Optional[date]:
    if _is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return dateparser.isoparse(str(value)).date()
    except (ValueError, TypeError) as exc:
        raise ValueError(f"invalid date in '{field_name}': {value}") from exc


def _parse_optional_hours(value: object, field_name: str) -> Optional[float]:
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be a number")
    try:
        number = float(value)  # type: ignore[arg-type]
    except (ValueError, TypeError) as exc:
        raise ValueError(f"invalid numeric value in '{field_name}': {value}") from exc
    if not math.isfinite(number):
        raise ValueError(f"'{field_name}' must be a finite number: {value}")
    return number


def _parse_optional_priority(value: object) -> Optional[int]:
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise ValueError(f"priority must be an integer: {value}")
    try:
        number = float(value)  # type: ignore[arg-type]
    except (ValueError, TypeError) as exc:
        raise ValueError(f"priority must be an integer: {value}") from exc
    if not number.is_integer():
        raise ValueError(f"priority must be an integer: {value}")
    return int(number)


def load_projects(path: str | Path) -> pd.DataFrame:
    try:
        df = pd.read_csv(path, dtype=str)
    except pd.errors.EmptyDataError:
        df = pd.DataFrame(columns=sorted(_PROJECT_REQUIRED_COLUMNS))
    _require_columns(df, _PROJECT_REQUIRED_COLUMNS, Path(path).name)
    for col in _HOURS_COLUMNS:
        if col not in df.columns:
            df[col] = float("nan")
            continue
        try:
            df[col] = pd.to_numeric(df[col])
        except ValueError as exc:
            raise ValueError(f"invalid numeric value in column '{col}'") from exc
        if df[col].isin([float("inf"), float("-inf")]).any():
            raise ValueError(f"column '{col}' must hold finite numbers")
    for col in _DATE_COLUMNS:
        if col not in df.columns:
            df[col] = None
        df[col] = df[col].map(lambda value, field=col: parse_optional_date(value, field))
    df["archived"] = (
        df["archived"].map(lambda value: _parse_bool(value, "archived")) if "archived" in df.columns else False
    )
    df["priority"] = df["priority"].map(_parse_optional_priority) if "priority" in df.columns else None
    if "status" not in df.columns:
        df["status"] = ""
    return df


def demands_from_df(df: pd.DataFrame) -> List[ProjectDemand]:
    demands: List[ProjectDemand] = []
    for row_number, row in enumerate(df.itertuples(index=False), start=1):
        if _is_blank(row.id):
            raise ValueError(f"project id is required (row {row_number})")
        demands.append(
            ProjectDemand(
                id=str(row.id).strip(),
                name="" if _is_blank(row.name) else str(row.name),
                status="" if _is_blank(row.status) else str(row.status),
                archived=bool(row.archived),
                remaining_hours=resolve_remaining_hours(
                    row.remaining_shop_hours, row.estimated_shop_hours_total
                ),
                scheduled_start_date=parse_optional_date(row.scheduled_start_date, "scheduled_start_date"),
                projected_start_date=parse_optional_date(row.projected_start_date, "projected_start_date"),
                priority=None if _is_blank(row.priority) else int(row.priority),
            )
        )
    return demands


def _normalize_keys(data: Mapping[str, object], aliases: Mapping[str, str]) -> Dict[str, object]:
    normalized: Dict[str, object] = {}
    for key, value in data.items():
        normalized[aliases.get(key, key)] = value
    return normalized


def demand_from_record(record: Mapping[str, object]) -> ProjectDemand:
    if not isinstance(record, Mapping):
        raise ValueError("project entries must be objects")
    data = _normalize_keys(record, _RECORD_ALIASES)
    project_id = data.get("id")
    if _is_blank(project_id):
        raise ValueError("project id is required")
    return ProjectDemand(
        id=str(project_id),
        name=str(data.get("name") or ""),
        status=str(data.get("status") or ""),
        archived=_parse_bool(data.get("archived", False), "archived"),
        remaining_hours=resolve_remaining_hours(
            _parse_optional_hours(data.get("remaining_shop_hours"), "remaining_shop_hours"),
            _parse_optional_hours(data.get("estimated_shop_hours_total"), "estimated_shop_hours_total"),
        ),
        scheduled_start_date=parse_optional_date(data.get("scheduled_start_date"), "scheduled_start_date"),
        projected_start_date=parse_optional_date(data.get("projected_start_date"), "projected_start_date"),
        priority=_parse_optional_priority(data.get("priority")),
    )


def demands_from_records(records: object) -> List[ProjectDemand]:
    if records is None:
        return []
    if not isinstance(records, list):
        raise ValueError("project lists must be JSON arrays")
    return [demand_from_record(record) for record in records]


def settings_from_dict(data: Mapping[str, object]) -> CompanySettings:
    if not isinstance(data, Mapping):
        raise ValueError("settings must be an object")
    values = _normalize_keys(data, _SETTINGS_ALIASES)

    capacity = values.get("shop_capacity_hours_per_week")
    if capacity is None:
        capacity = 0.0
    if isinstance(capacity, bool) or not isinstance(capacity, (int, float)):
        raise ValueError("shop_capacity_hours_per_week must be a number")
    if not math.isfinite(capacity):
        raise ValueError("shop_capacity_hours_per_week must be a finite number")
    if capacity < 0:
        raise ValueError("shop_capacity_hours_per_week must not be negative")

    weeks = values.get("backlog_forecast_weeks")
    if weeks is None:
        weeks = DEFAULT_FORECAST_WEEKS
    if isinstance(weeks, bool) or not isinstance(weeks, int) or weeks <= 0:
        raise ValueError("backlog_forecast_weeks must be a positive integer")

    threshold = values.get("under_utilized_threshold")
    if threshold is None:
        threshold = DEFAULT_UNDER_UTILIZED_THRESHOLD
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise ValueError("under_utilized_threshold must be a number")
    if not (0 < threshold <= 1):
        raise ValueError("under_utilized_threshold must be in (0, 1]")

    logging_level = values.get("logging_level", "INFO")
    if not isinstance(logging_level, str):
        raise ValueError("logging_level must be a string")

    return CompanySettings(
        shop_capacity_hours_per_week=float(capacity),
        backlog_forecast_weeks=weeks,
        under_utilized_threshold=float(threshold),
        logging_level=logging_level,
    )


def load_settings(path: str | Path) -> CompanySettings:
    try:
        data = json.loads(Path(path).read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"settings file is not valid JSON: {exc}") from exc
    return settings_from_dict(data)


def options_from_dict(data: Optional[Mapping[str, object]]) -> ForecastOptions:
    if data is None:
        return ForecastOptions()
    if not isinstance(data, Mapping):
        raise ValueError("options must be an object")
    values = _normalize_keys(data, _OPTIONS_ALIASES)
    shift = values.get("shift_multiplier", 1.0)
    if shift is None:
        shift = 1.0
    if isinstance(shift, bool) or not isinstance(shift, (int, float)):
        raise ValueError("shift_multiplier must be a number")
    weeks = values.get("weeks")
    if weeks is not None and (isinstance(weeks, bool) or not isinstance(weeks, int) or weeks <= 0):
        raise ValueError("weeks must be a positive integer")
    return ForecastOptions(
        shift_multiplier=float(shift),
        weeks=weeks,
        start_date=parse_optional_date(values.get("start_date"), "start_date"),
    )


def _jsonable(value: object) -> object:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def summary_to_dict(summary: ForecastSummary) -> Dict[str, object]:
    return _jsonable(asdict(summary))  # type: ignore[return-value]


def summary_to_json(summary: ForecastSummary) -> str:
    return json.dumps(summary_to_dict(summary), indent=2, sort_keys=True)


def weekly_load_frame(summary: ForecastSummary) -> pd.DataFrame:
    """One row per bucket allocation; empty weeks get a single blank row."""
    rows: List[Dict[str, object]] = []
    for bucket in summary.buckets:
        utilization = bucket.utilization()
        base = {
            "week_index": bucket.week_index,
            "week_start": bucket.start_date.strftime(DATE_FMT),
            "week_end": bucket.end_date.strftime(DATE_FMT),
            "capacity_hours": round(bucket.capacity_hours, 4),
            "used_hours": round(bucket.used_hours, 4),
            "utilization": round(utilization, 4) if utilization is not None else None,
        }
        if not bucket.allocations:
            rows.append({**base, "project_id": "", "project_name": "", "status": "", "kind": "", "hours": 0.0})
            continue
        for entry in bucket.allocations:
            rows.append(
                {
                    **base,
                    "project_id": entry.project_id,
                    "project_name": entry.name,
                    "status": entry.status,
                    "kind": entry.kind,
                    "hours": round(entry.hours, 4),
                }
            )
    return pd.DataFrame(
        rows,
        columns=[
            "week_index",
            "week_start",
            "week_end",
            "capacity_hours",
            "used_hours",
            "utilization",
            "project_id",
            "project_name",
            "status",
            "kind",
            "hours",
        ],
    )


def ensure_directory(path: str | Path) -> Path:
    target = Path(path)
    target.mkdir(parents=True, exist_ok=True)
    return target


def write_csv(df: pd.DataFrame, path: str | Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)


def write_summary_json(summary: ForecastSummary, path: str | Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    Path(path).write_text(summary_to_json(summary) + "\n")


def load_inputs(
    projects_path: str | Path,
    pending_path: Optional[str | Path],
    settings_path: str | Path,
) -> Tuple[List[ProjectDemand], List[ProjectDemand], CompanySettings]:
    """Read committed projects, the optional pipeline file and company settings."""
    committed = demands_from_df(load_projects(projects_path))
    pending: List[ProjectDemand] = []
    if pending_path is not None and Path(pending_path).exists():
        pending = demands_from_df(load_projects(pending_path))
    return committed, pending, load_settings(settings_path)


_BID_ALIASES = {
    "projectName": "project_name",
    "projectId": "project_id",
    "clientName": "client_name",
    "bidType": "bid_type",
    "bidAmount": "bid_amount",
    "bidDueDate": "bid_due_date",
    "probabilityOverride": "probability_override",
}


def bid_from_record(record: Mapping[str, object]) -> Bid:
    if not isinstance(record, Mapping):
        raise ValueError("bid entries must be objects")
    data = _normalize_keys(record, _BID_ALIASES)
    if _is_blank(data.get("id")):
        raise ValueError("bid id is required")
    bid_type = data.get("bid_type")
    if bid_type not in ("PUBLIC", "PRIVATE"):
        raise ValueError(f"unsupported bid_type '{bid_type}' for bid {data['id']}")
    status = data.get("status", "ACTIVE")
    if status not in BID_STATUSES:
        raise ValueError(f"unsupported status '{status}' for bid {data['id']}")
    stage = data.get("stage")
    if stage is not None and stage not in BID_STAGES:
        raise ValueError(f"unsupported stage '{stage}' for bid {data['id']}")
    amount = _parse_optional_hours(data.get("bid_amount"), "bid_amount")
    due_date = parse_optional_date(data.get("bid_due_date"), "bid_due_date")
    if due_date is None:
        raise ValueError(f"bid_due_date is required for bid {data['id']}")
    return Bid(
        id=str(data["id"]),
        project_name=str(data.get("project_name") or ""),
        bid_type=bid_type,  # type: ignore[arg-type]
        bid_amount=amount or 0.0,
        bid_due_date=due_date,
        status=status,  # type: ignore[arg-type]
        stage=stage,  # type: ignore[arg-type]
        probability=_parse_optional_hours(data.get("probability"), "probability"),
        probability_override=_parse_optional_hours(data.get("probability_override"), "probability_override"),
        project_id=None if _is_blank(data.get("project_id")) else str(data["project_id"]),
        client_name=None if _is_blank(data.get("client_name")) else str(data["client_name"]),
    )


def bids_from_records(records: object) -> List[Bid]:
    if records is None:
        return []
    if not isinstance(records, list):
        raise ValueError("bids must be a JSON array")
    return [bid_from_record(record) for record in records]


def context_from_dict(data: Optional[Mapping[str, object]]) -> ForecastContext:
    if data is None:
        return ForecastContext()
    if not isinstance(data, Mapping):
        raise ValueError("context must be an object")
    baseline = data.get("public_baseline_win_rate", data.get("publicBaselineWinRate"))
    stages = data.get("private_stage_probabilities", data.get("privateStageProbabilities"))
    default = ForecastContext()
    if baseline is not None and (isinstance(baseline, bool) or not isinstance(baseline, (int, float))):
        raise ValueError("public_baseline_win_rate must be a number")
    if stages is not None:
        if not isinstance(stages, Mapping):
            raise ValueError("private_stage_probabilities must be an object")
        unknown = sorted(set(stages) - set(BID_STAGES))
        if unknown:
            raise ValueError(f"unknown bid stages: {', '.join(unknown)}")
        if any(isinstance(value, bool) or not isinstance(value, (int, float)) for value in stages.values()):
            raise ValueError("private_stage_probabilities values must be numbers")
        merged = dict(default.private_stage_probabilities)
        merged.update({str(key): float(value) for key, value in stages.items()})
        stages = merged
    return ForecastContext(
        public_baseline_win_rate=float(baseline) if baseline is not None else default.public_baseline_win_rate,
        private_stage_probabilities=stages if stages is not None else default.private_stage_probabilities,
    )
