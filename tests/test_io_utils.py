from __future__ import annotations

import json
import math
from datetime import date

import pytest

from shop_load.engine import build_forecast
from shop_load.io_utils import (
    demand_from_record,
    demands_from_df,
    load_inputs,
    load_projects,
    load_settings,
    options_from_dict,
    settings_from_dict,
    summary_to_dict,
    weekly_load_frame,
)
from shop_load.models import CompanySettings, ForecastOptions, ProjectDemand, resolve_remaining_hours

PROJECTS_CSV = """id,name,status,archived,remaining_shop_hours,estimated_shop_hours_total,scheduled_start_date,projected_start_date,priority
P-1,Warehouse Frame,awarded,false,120.5,300,2026-11-02,,
P-2,Stair Package,in_progress,,,80,,2026-10-28,2
P-3,Old Canopy,complete,true,,,,,
"""


def _write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text)
    return path


def test_remaining_hours_precedence():
    assert resolve_remaining_hours(10.0, 20.0) == 10.0
    assert resolve_remaining_hours(None, 20.0) == 20.0
    assert resolve_remaining_hours(float("nan"), 20.0) == 20.0
    assert resolve_remaining_hours(0.0, 20.0) == 0.0
    assert resolve_remaining_hours(None, None) == 0.0
    assert resolve_remaining_hours(None) == 0.0


def test_load_projects_from_csv(tmp_path):
    path = _write(tmp_path, "projects.csv", PROJECTS_CSV)

    demands = demands_from_df(load_projects(path))

    assert [d.id for d in demands] == ["P-1", "P-2", "P-3"]
    first, second, third = demands
    assert first.remaining_hours == 120.5
    assert first.status == "awarded"
    assert first.archived is False
    assert first.scheduled_start_date == date(2026, 11, 2)
    assert first.projected_start_date is None
    assert first.priority is None
    assert second.remaining_hours == 80.0
    assert second.projected_start_date == date(2026, 10, 28)
    assert second.priority == 2
    assert third.archived is True
    assert third.remaining_hours == 0.0


def test_load_projects_with_only_required_columns(tmp_path):
    path = _write(tmp_path, "projects.csv", "id,name\nA,Alpha\n")

    (demand,) = demands_from_df(load_projects(path))

    assert demand == ProjectDemand(id="A", name="Alpha", remaining_hours=0.0)


def test_load_projects_missing_columns(tmp_path):
    path = _write(tmp_path, "projects.csv", "name,remaining_shop_hours\nAlpha,10\n")

    with pytest.raises(ValueError, match="missing required columns: id"):
        load_projects(path)


def test_load_projects_rejects_non_numeric_hours(tmp_path):
    path = _write(tmp_path, "projects.csv", "id,name,remaining_shop_hours\nA,Alpha,lots\n")

    with pytest.raises(ValueError, match="remaining_shop_hours"):
        load_projects(path)


def test_load_projects_rejects_bad_dates(tmp_path):
    path = _write(tmp_path, "projects.csv", "id,name,scheduled_start_date\nA,Alpha,next week\n")

    with pytest.raises(ValueError, match="invalid date in 'scheduled_start_date'"):
        load_projects(path)


def test_empty_file_means_no_projects(tmp_path):
    path = _write(tmp_path, "pending.csv", "")

    assert demands_from_df(load_projects(path)) == []


def test_settings_defaults_and_camel_case():
    assert settings_from_dict({}) == CompanySettings()

    settings = settings_from_dict(
        {"shopCapacityHoursPerWeek": 800, "backlogForecastWeeks": 12, "underUtilizedThreshold": 0.6}
    )

    assert settings.shop_capacity_hours_per_week == 800.0
    assert settings.backlog_forecast_weeks == 12
    assert settings.under_utilized_threshold == 0.6


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"shop_capacity_hours_per_week": -1}, "must not be negative"),
        ({"shop_capacity_hours_per_week": "400"}, "must be a number"),
        ({"backlog_forecast_weeks": 0}, "positive integer"),
        ({"backlog_forecast_weeks": 2.5}, "positive integer"),
        ({"under_utilized_threshold": 1.5}, r"\(0, 1\]"),
        ({"under_utilized_threshold": 0}, r"\(0, 1\]"),
    ],
)
def test_settings_validation(payload, message):
    with pytest.raises(ValueError, match=message):
        settings_from_dict(payload)


def test_load_settings_rejects_invalid_json(tmp_path):
    path = _write(tmp_path, "settings.json", "{not json")

    with pytest.raises(ValueError, match="not valid JSON"):
        load_settings(path)


def test_load_inputs_treats_missing_pending_as_empty(tmp_path):
    projects = _write(tmp_path, "projects.csv", PROJECTS_CSV)
    settings = _write(tmp_path, "settings.json", json.dumps({"shop_capacity_hours_per_week": 400}))

    committed, pending, loaded = load_inputs(projects, tmp_path / "pending.csv", settings)

    assert len(committed) == 3
    assert pending == []
    assert loaded.shop_capacity_hours_per_week == 400.0


def test_demand_from_record_accepts_document_fields():
    demand = demand_from_record(
        {
            "id": "P9",
            "projectName": "Mezzanine",
            "estimatedShopHoursTotal": 240,
            "scheduledStartDate": "2026-11-04T08:00:00",
            "priority": 3,
        }
    )

    assert demand.name == "Mezzanine"
    assert demand.remaining_hours == 240.0
    assert demand.scheduled_start_date == date(2026, 11, 4)
    assert demand.priority == 3


def test_demand_from_record_requires_id():
    with pytest.raises(ValueError, match="project id is required"):
        demand_from_record({"name": "No id"})


def test_options_from_dict():
    options = options_from_dict({"shiftMultiplier": 1.25, "weeks": 8, "startDate": "2026-10-21"})

    assert options == ForecastOptions(shift_multiplier=1.25, weeks=8, start_date=date(2026, 10, 21))
    assert options_from_dict(None) == ForecastOptions()
    with pytest.raises(ValueError, match="weeks"):
        options_from_dict({"weeks": -2})


def test_summary_serializes_dates_as_iso():
    summary = build_forecast(
        [ProjectDemand(id="P1", name="Frame", remaining_hours=500, status="awarded")],
        [],
        CompanySettings(shop_capacity_hours_per_week=400),
        ForecastOptions(weeks=2, start_date=date(2026, 10, 19)),
    )

    payload = summary_to_dict(summary)

    assert payload["buckets"][0]["start_date"] == "2026-10-19T00:00:00"
    assert payload["buckets"][0]["end_date"] == "2026-10-25T23:59:59.999999"
    assert payload["buckets"][1]["allocations"] == [
        {"project_id": "P1", "name": "Frame", "hours": 100.0, "status": "awarded", "kind": "committed"}
    ]
    assert payload["gaps"][0]["utilization"] == 0.25
    assert payload["scenario"] == {"shift_multiplier": 1.0, "weeks": 2}
    json.dumps(payload)


def test_weekly_load_frame_has_row_per_allocation():
    summary = build_forecast(
        [ProjectDemand(id="A", name="A", remaining_hours=300), ProjectDemand(id="B", name="B", remaining_hours=200)],
        [],
        CompanySettings(shop_capacity_hours_per_week=400),
        ForecastOptions(weeks=3, start_date=date(2026, 10, 19)),
    )

    frame = weekly_load_frame(summary)

    assert list(frame["week_index"]) == [0, 0, 1, 2]
    assert list(frame["project_id"]) == ["A", "B", "B", ""]
    assert list(frame["hours"]) == [300.0, 100.0, 100.0, 0.0]
    assert frame.loc[3, "week_start"] == "2026-11-02"
    assert math.isclose(frame.loc[0, "utilization"], 1.0)


def test_load_projects_rejects_blank_ids(tmp_path):
    path = _write(tmp_path, "projects.csv", "id,name,remaining_shop_hours\nP-1,Frame,50\n,Alpha,100\n,Beta,100\n")

    with pytest.raises(ValueError, match=r"project id is required \(row 2\)"):
        demands_from_df(load_projects(path))


def test_load_projects_rejects_infinite_hours(tmp_path):
    path = _write(tmp_path, "projects.csv", "id,name,remaining_shop_hours\nA,Alpha,inf\n")

    with pytest.raises(ValueError, match="finite"):
        load_projects(path)


@pytest.mark.parametrize("priority", ["1.7", True, "high"])
def test_priority_must_be_integral(priority):
    with pytest.raises(ValueError, match="priority must be an integer"):
        demand_from_record({"id": "P1", "priority": priority})


def test_whole_number_priority_text_is_accepted(tmp_path):
    path = _write(tmp_path, "projects.csv", "id,name,priority\nA,Alpha,2.0\n")

    (demand,) = demands_from_df(load_projects(path))

    assert demand.priority == 2


@pytest.mark.parametrize("hours", [float("inf"), float("-inf")])
def test_record_hours_must_be_finite(hours):
    with pytest.raises(ValueError, match="finite"):
        demand_from_record({"id": "P1", "remainingShopHours": hours})


def test_settings_capacity_must_be_finite():
    with pytest.raises(ValueError, match="finite"):
        settings_from_dict({"shop_capacity_hours_per_week": float("inf")})


def test_nan_record_hours_fall_back_to_estimate():
    demand = demand_from_record({"id": "P1", "remainingShopHours": float("nan"), "estimatedShopHoursTotal": 40})

    assert demand.remaining_hours == 40.0
