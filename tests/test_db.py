import pytest

from sales_intel import db
from sales_intel.config import get_settings
from sales_intel.errors import InvalidInputError, NotFoundError, StageBlockedError


def _lead(**fields):
    return db.create_lead(dict({"company_name": "Lakeside Offices", "company_city": "Austin"}, **fields))


def test_create_lead_defaults():
    lead = _lead()
    stored = db.get_lead(lead["id"])
    assert stored["status"] == "new"
    assert stored["enrichment_status"] == "discovered"
    assert db.get_lead("missing") is None
    with pytest.raises(NotFoundError):
        db.require_lead("missing")


def test_stage_payloads_must_be_written_in_order():
    lead = _lead()
    with pytest.raises(StageBlockedError) as exc:
        db.save_stage_payload(lead["id"], "property", {"property_type": "Office"})
    assert exc.value.detail["missing"] == ["geo_enrichment"]

    db.save_stage_payload(lead["id"], "geo", {"full_address": "1 Main St"})
    with pytest.raises(StageBlockedError):
        db.save_stage_payload(lead["id"], "service", {"executive_summary": "x"})
    db.save_stage_payload(lead["id"], "property", {"property_type": "Office"})
    doc = db.save_stage_payload(lead["id"], "service", {"executive_summary": "x"})
    assert doc["service_mapping"] == {"executive_summary": "x"}


def test_update_lead_rejects_stage_keys():
    lead = _lead()
    with pytest.raises(InvalidInputError):
        db.update_lead(lead["id"], {"geo_enrichment": {"full_address": "x"}})
    updated = db.update_lead(lead["id"], {"status": "contacted"})
    assert updated["status"] == "contacted"
    assert db.get_lead(lead["id"])["company_name"] == "Lakeside Offices"


def test_set_stage_run_records_state():
    lead = _lead()
    db.set_stage_run(lead["id"], "geo", "failed", reason="No results")
    run = db.get_lead(lead["id"])["stage_runs"]["geo"]
    assert run["state"] == "failed"
    assert run["reason"] == "No results"


def test_activity_crud():
    lead = _lead()
    first = db.create_activity(lead["id"], "call", "Left voicemail", "Sales Rep")
    db.create_activity(lead["id"], "note", "Budget in Q3", "Sales Rep", follow_up_date="2026-11-01")
    assert len(db.list_activities(lead["id"])) == 2

    with pytest.raises(InvalidInputError):
        db.create_activity(lead["id"], "fax", "x", "Sales Rep")
    with pytest.raises(InvalidInputError):
        db.create_activity(lead["id"], "call", "", "Sales Rep")
    with pytest.raises(NotFoundError):
        db.create_activity("missing", "call", "x", "Sales Rep")

    updated = db.update_activity(lead["id"], first["id"], {"follow_up_completed": True, "content": "Spoke to Dana"})
    assert updated["follow_up_completed"] is True
    assert updated["content"] == "Spoke to Dana"

    db.delete_activity(lead["id"], first["id"])
    assert [a["content"] for a in db.list_activities(lead["id"])] == ["Budget in Q3"]
    with pytest.raises(NotFoundError):
        db.delete_activity(lead["id"], first["id"])


def test_saved_settings_override_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("APOLLO_API_KEY", "apollo-env")
    db.save_settings({"ai_api_key": "sk-saved", "enrichment_api_key": "", "business_profile": {"company_name": "GreenCo"}})

    settings = get_settings()
    assert settings.ai_api_key == "sk-saved"
    # empty saved values do not clear the environment
    assert settings.enrichment_api_key == "apollo-env"
    assert settings.business_profile == {"company_name": "GreenCo"}
    assert settings.masked()["ai_api_key"] == "sk-s..."


def test_job_cancel_pending_running_missing():
    pending = db.create_job("campaign_prepare", {"campaign_id": "c1"})
    assert db.request_job_cancel(pending) is True
    job = db.get_job(pending)
    assert job["status"] == "cancelled"
    assert job["completed_at"]

    running = db.create_job("full_analysis", {"lead_id": "l1"})
    db.update_job_status(running, "running")
    db.request_job_cancel(running)
    job = db.get_job(running)
    assert job["status"] == "running"
    assert job["cancel_requested"] is True

    assert db.request_job_cancel("missing") is False


def test_job_progress_and_result():
    job_id = db.create_job("campaign_prepare", {"campaign_id": "c1"})
    assert db.get_pending_jobs()[0]["id"] == job_id
    db.update_job_progress(job_id, {"phase": "enriching", "total": 3, "completed": 1, "failed": 0})
    db.update_job_status(job_id, "completed", result={"enriched": 3})
    job = db.get_job(job_id)
    assert job["progress"]["completed"] == 1
    assert job["result"] == {"enriched": 3}
    assert job["input"] == {"campaign_id": "c1"}
    assert db.get_pending_jobs() == []


def test_delete_leads_removes_enrollments_and_messages():
    lead = _lead()
    campaign = db.create_campaign("Spring")
    steps = db.replace_campaign_steps(campaign["id"], [{"step_order": 1}])
    db.add_campaign_leads(campaign["id"], [lead["id"]])
    db.upsert_generated_message(campaign["id"], lead["id"], steps[0]["id"], "S", "B")

    assert db.delete_leads([lead["id"], "missing"]) == 1
    assert db.get_lead(lead["id"]) is None
    assert db.get_campaign(campaign["id"])["lead_ids"] == []
    assert db.list_generated_messages(campaign["id"]) == []
