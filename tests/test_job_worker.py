from backend.services import job_worker
from sales_intel import campaigns, db
from sales_intel.config import Settings


def _queued(job_type, inp):
    job_id = db.create_job(job_type, inp)
    return db.get_job(job_id)


def test_unknown_job_type_fails():
    job = _queued("export_pdf", {})
    job_worker._process_job(job)
    stored = db.get_job(job["id"])
    assert stored["status"] == "failed"
    assert "Unknown job type" in stored["error"]


def test_campaign_prepare_job_completes_with_progress(monkeypatch):
    monkeypatch.setattr(job_worker, "get_settings", lambda: Settings())
    lead = db.create_lead({"company_name": "Acme", "first_name": "Pat", "enrichment_status": "complete"})
    campaign = campaigns.create_campaign("Spring")
    campaigns.set_campaign_steps(campaign["id"], [{"subject_template": "Hi {{firstName}}", "body_template": "B"}])
    campaigns.add_campaign_leads(campaign["id"], [lead["id"]])

    job = _queued("campaign_prepare", {"campaign_id": campaign["id"]})
    job_worker._process_job(job)

    stored = db.get_job(job["id"])
    assert stored["status"] == "completed"
    assert stored["result"]["messages"]["generated"] == 1
    assert stored["progress"]["phase"] == "preview"
    assert stored["completed_at"]


def test_intel_error_is_recorded_on_the_job(monkeypatch):
    monkeypatch.setattr(job_worker, "get_settings", lambda: Settings())
    job = _queued("campaign_prepare", {"campaign_id": "missing"})
    job_worker._process_job(job)
    stored = db.get_job(job["id"])
    assert stored["status"] == "failed"
    assert stored["result"]["error"]["kind"] == "not_found"


def test_cancelled_full_analysis_marks_job_cancelled(monkeypatch):
    def fake_full_analysis(lead_id, settings=None, cancel=None):
        return {"lead_id": lead_id, "completed": False, "stages": [],
                "error": {"kind": "cancelled", "message": "Full analysis cancelled"}}

    monkeypatch.setattr(job_worker, "get_settings", lambda: Settings())
    monkeypatch.setattr(job_worker, "run_full_analysis", fake_full_analysis)
    job = _queued("full_analysis", {"lead_id": "l1"})
    job_worker._process_job(job)
    assert db.get_job(job["id"])["status"] == "cancelled"
