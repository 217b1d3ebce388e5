from __future__ import annotations

import json

import pytest

from webapp.app import create_app


@pytest.fixture
def portfolios(tmp_path, monkeypatch):
    root = tmp_path / "portfolios"
    input_dir = root / "shop-a" / "input"
    input_dir.mkdir(parents=True)
    (input_dir / "projects.csv").write_text("id,name,remaining_shop_hours\nP-1,Frame,500\n")
    (input_dir / "settings.json").write_text(json.dumps({"shop_capacity_hours_per_week": 400}))
    (root / "incomplete").mkdir()
    monkeypatch.setenv("PROJECTS_ROOT", str(root))
    return root


@pytest.fixture
def client(portfolios):
    app = create_app()
    app.config["TESTING"] = True
    return app.test_client()


FORECAST_PAYLOAD = {
    "projects": [{"id": "P1", "projectName": "Frame", "remainingShopHours": 1000, "status": "awarded"}],
    "pending_projects": [{"id": "B1", "projectName": "Bid", "estimatedShopHoursTotal": 100}],
    "settings": {"shopCapacityHoursPerWeek": 400},
    "options": {"weeks": 3, "startDate": "2026-10-19"},
}


def test_forecast_endpoint_returns_summary(client):
    response = client.post("/forecast", json=FORECAST_PAYLOAD)

    assert response.status_code == 200
    body = response.get_json()
    assert [b["used_hours"] for b in body["buckets"]] == [400, 400, 300]
    assert body["total_committed_hours"] == 1000
    assert body["total_pending_hours"] == 100
    assert body["recommendations"][0]["week_index"] == 2
    assert body["overloads"] == []


def test_forecast_endpoint_rejects_bad_payload(client):
    response = client.post("/forecast", json={"projects": "not-a-list"})

    assert response.status_code == 400
    assert "JSON arrays" in response.get_json()["error"]


def test_forecast_endpoint_rejects_bad_threshold(client):
    response = client.post("/forecast", json={**FORECAST_PAYLOAD, "threshold": "high"})

    assert response.status_code == 400


def test_scenarios_endpoint(client):
    payload = {**FORECAST_PAYLOAD, "shift_multipliers": [1.0, 2.0]}

    response = client.post("/scenarios", json=payload)

    assert response.status_code == 200
    scenarios = response.get_json()["scenarios"]
    assert [s["weekly_capacity"] for s in scenarios] == [400, 800]
    assert [s["scenario"]["shift_multiplier"] for s in scenarios] == [1.0, 2.0]


def test_scenarios_endpoint_requires_multipliers(client):
    response = client.post("/scenarios", json=FORECAST_PAYLOAD)

    assert response.status_code == 400
    assert "shift_multipliers" in response.get_json()["error"]


def test_dirs_lists_portfolios(client):
    response = client.get("/dirs")

    projects = response.get_json()["projects"]
    assert [(p["name"], p["is_valid"]) for p in projects] == [("incomplete", False), ("shop-a", True)]


def test_portfolio_forecast(client):
    response = client.get("/api/forecast/shop-a?weeks=2&start_date=2026-10-19")

    assert response.status_code == 200
    body = response.get_json()
    assert [b["used_hours"] for b in body["buckets"]] == [400, 100]
    assert body["scenario"]["weeks"] == 2


def test_portfolio_forecast_rejects_incomplete_dir(client):
    response = client.get("/api/forecast/incomplete")

    assert response.status_code == 400
    assert "missing" in response.get_json()["error"]


def test_pipeline_endpoint(client):
    payload = {
        "bids": [
            {"id": "b1", "projectName": "Dock", "bidType": "PRIVATE", "stage": "VERBAL", "bidAmount": 200000, "bidDueDate": "2026-11-20"},
            {"id": "b2", "projectName": "School", "bidType": "PUBLIC", "bidAmount": 100000, "bidDueDate": "2026-11-25"},
        ]
    }

    response = client.post("/pipeline", json=payload)

    assert response.status_code == 200
    body = response.get_json()
    assert body["total"] == pytest.approx(190000)
    assert body["counts"]["public"] == 1


def test_pipeline_endpoint_rejects_unknown_bid_type(client):
    response = client.post(
        "/pipeline", json={"bids": [{"id": "x", "bidType": "OTHER", "bidDueDate": "2026-11-20"}]}
    )

    assert response.status_code == 400


def test_forecast_endpoint_rejects_infinite_hours(client):
    body = '{"projects": [{"id": "P1", "remainingShopHours": Infinity}], "settings": {"shopCapacityHoursPerWeek": 400}}'

    response = client.post("/forecast", data=body, content_type="application/json")

    assert response.status_code == 400
    assert "finite" in response.get_json()["error"]
