"""
HTTP surface: error envelope, lead status rules, stage gating, scores,
campaigns and job cancellation. The client is used without its context
manager so the background worker does not start.
"""

import pytest
from fastapi.testclient import TestClient

from backend.main import app
from sales_intel import db


@pytest.fixture
def client():
    return TestClient(app)


def _create_lead(client, **fields):
    body = dict({"company_name": "Lakeside Offices", "company_city": "Austin", "company_state": "TX"}, **fields)
    resp = client.post("/leads", json=body)
    assert resp.status_code == 200
    return resp.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_lead_status_validation(client):
    lead = _create_lead(client)
    resp = client.patch(f"/leads/{lead['id']}/status", json={"status": "archived"})
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["kind"] == "invalid_input"
    assert "Invalid status" in error["message"]

    resp = client.patch(f"/leads/{lead['id']}/status", json={"status": "qualified", "qualification_level": "hot"})
    assert resp.status_code == 200
    assert resp.json()["qualification_level"] == "hot"

    assert client.patch(f"/leads/{lead['id']}/status", json={}).status_code == 400


def test_missing_lead_is_404(client):
    resp = client.get("/leads/nope")
    assert resp.status_code == 404
    assert resp.json()["error"]["kind"] == "not_found"


def test_stage_view_and_blocked_run(client):
    lead = _create_lead(client)
    stages = client.get(f"/leads/{lead['id']}/stages").json()["stages"]
    assert stages["geo"]["status"] == "pending"
    assert stages["geo"]["can_run"] is True
    assert stages["property"]["status"] == "disabled"
    assert stages["service"]["can_run"] is False

    resp = client.post(f"/leads/{lead['id']}/property-analysis")
    assert resp.status_code == 409
    error = resp.json()["error"]
    assert error["kind"] == "stage_blocked"
    assert error["message"] == "Geo enrichment required. Run Stage 1 first."


def test_full_analysis_background_queues_job(client):
    lead = _create_lead(client)
    resp = client.post(f"/leads/{lead['id']}/full-analysis", json={"background": True})
    assert resp.status_code == 200
    job = client.get(f"/jobs/{resp.json()['job_id']}").json()
    assert job["type"] == "full_analysis"
    assert job["status"] == "pending"


def test_scores_sorted_with_summary(client):
    _create_lead(client, status="new")
    _create_lead(client, company_name="Hilltop HOA", status="proposal", qualification_level="hot",
                 estimated_value=150000)
    body = client.get("/scores").json()
    scores = [item["opportunity_score"] for item in body["items"]]
    assert scores == sorted(scores, reverse=True)
    assert body["summary"]["total_leads"] == 2


def test_activities_endpoints(client):
    lead = _create_lead(client)
    resp = client.post(f"/leads/{lead['id']}/activities", json={"activity_type": "call", "content": "Intro call"})
    activity = resp.json()["activity"]
    assert activity["created_by"] == "Sales Rep"
    listed = client.get(f"/leads/{lead['id']}/activities").json()["activities"]
    assert [a["id"] for a in listed] == [activity["id"]]
    bad = client.post(f"/leads/{lead['id']}/activities", json={"activity_type": "fax", "content": "x"})
    assert bad.status_code == 400


def test_campaign_prepare_and_cancel(client):
    lead = _create_lead(client)
    campaign = client.post("/campaigns", json={"name": "Spring", "goal": "Book walks"}).json()
    steps = client.post(f"/campaigns/{campaign['id']}/steps", json={"steps": [{"delay_days": 0}]}).json()
    assert steps["steps"][0]["step_order"] == 1
    added = client.post(f"/campaigns/{campaign['id']}/leads", json={"lead_ids": [lead["id"], "missing"]}).json()
    assert added["added"] == 1
    assert added["skipped"] == 1

    job = client.post(f"/campaigns/{campaign['id']}/prepare", json={}).json()
    assert job["status"] == "pending"
    cancelled = client.post(f"/jobs/{job['job_id']}/cancel").json()
    assert cancelled["status"] == "cancelled"
    assert db.get_job(job["job_id"])["cancel_requested"] is True


def test_cancel_unknown_job_is_404(client):
    resp = client.post("/jobs/nope/cancel")
    assert resp.status_code == 404
    assert resp.json()["error"]["message"] == "Job not found"


def test_settings_masks_secrets(client):
    resp = client.post("/settings", json={"ai_api_key": "sk-secret-value"})
    assert resp.json()["saved"] == ["ai_api_key"]
    shown = client.get("/settings", headers={"X-Workspace-Id": "acme"}).json()
    assert shown["ai_api_key"] == "sk-s..."
    assert shown["workspace_id"] == "acme"


def test_delete_and_bulk_delete_leads(client):
    first = _create_lead(client)
    second = _create_lead(client, company_name="Hilltop HOA")
    third = _create_lead(client, company_name="Riverside Campus")
    client.post(f"/leads/{first['id']}/activities", json={"activity_type": "note", "content": "Gate code 1234"})

    assert client.delete(f"/leads/{first['id']}").json() == {"success": True}
    assert client.get(f"/leads/{first['id']}").status_code == 404
    assert db.list_activities(first["id"]) == []
    assert client.delete(f"/leads/{first['id']}").status_code == 404

    resp = client.post("/leads/bulk-delete", json={"lead_ids": [second["id"], third["id"], "missing"]})
    assert resp.json() == {"success": True, "deleted_count": 2}
    assert client.get("/leads").json()["total"] == 0
    assert client.post("/leads/bulk-delete", json={"lead_ids": []}).status_code == 400
