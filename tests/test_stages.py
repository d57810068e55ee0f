"""
Stage orchestrator: gating, derived state, persistence and full analysis.
"""

from datetime import datetime, timedelta, timezone

import pytest

from fakes import FakeLLM, FakePlaces, geocode_result
from sales_intel import db
from sales_intel.cancel import CancelToken
from sales_intel.errors import InvalidInputError, ParseFailureError, StageBlockedError
from sales_intel.stages import (
    StageStatus,
    derive_stage_states,
    legacy_view,
    run_full_analysis,
    run_stage,
    stage_state,
)

NOW = datetime(2026, 5, 15, 12, 0, tzinfo=timezone.utc)

VISION_REPLY = {
    "property_quality": "Good",
    "property_condition": "Well-maintained turf with mature trees",
    "lot_size_acres": 4.5,
    "key_observations": ["Large front lawn", "Irrigated beds"],
}
SERVICE_REPLY = {
    "executive_summary": "Strong fit for a full-service maintenance contract.",
    "context": {"opportunity_score": "High", "estimated_annual_value": "$48,000"},
    "recommended_services": [{"service_name": "Weekly Mowing", "estimated_value": "$1,200/month"}],
    "competition_assessment": {"local_providers": []},
}


def _lead(**overrides):
    lead = {
        "company_name": "Lakeside Office Park",
        "company_street": "100 Congress Ave",
        "company_city": "Austin",
        "company_state": "TX",
    }
    lead.update(overrides)
    return db.create_lead(lead)


# =============================================================================
# DERIVED STATE
# =============================================================================

def test_property_disabled_without_geo_even_while_loading():
    lead = {"id": "x", "company_city": "Austin"}
    view = legacy_view(lead, running={"property", "service"})
    assert view["geo"]["status"] == "pending"
    assert view["geo"]["can_run"] is True
    assert view["property"]["status"] == "disabled"
    assert view["property"]["can_run"] is False
    assert view["service"]["status"] == "disabled"


def test_service_disabled_without_property():
    lead = {"id": "x", "geo_enrichment": {"lat": 1}}
    view = legacy_view(lead)
    assert view["property"]["status"] == "pending"
    assert view["service"]["status"] == "disabled"
    assert view["service"]["reason"] == "Property analysis required. Run Stage 2 first."


def test_blocked_wins_over_recorded_run():
    lead = {
        "id": "x",
        "stage_runs": {"property": {"state": "running", "at": NOW.isoformat()}},
    }
    assert stage_state(lead, "property", NOW).status == StageStatus.BLOCKED


def test_running_goes_stale():
    fresh = {"geo": {"state": "running", "at": (NOW - timedelta(minutes=2)).isoformat()}}
    stale = {"geo": {"state": "running", "at": (NOW - timedelta(hours=2)).isoformat()}}
    assert stage_state({"stage_runs": fresh}, "geo", NOW).status == StageStatus.RUNNING
    assert stage_state({"stage_runs": stale}, "geo", NOW).status == StageStatus.PENDING


def test_complete_and_failed_states():
    lead = {
        "geo_enrichment": {"lat": 1},
        "stage_runs": {"property": {"state": "failed", "reason": "boom", "at": NOW.isoformat()}},
    }
    states = derive_stage_states(lead, NOW)
    assert states["geo"].status == StageStatus.COMPLETE
    assert states["property"].status == StageStatus.FAILED
    assert states["property"].reason == "boom"
    assert states["service"].status == StageStatus.BLOCKED


# =============================================================================
# RUN STAGE
# =============================================================================

def test_property_blocked_before_any_external_call(settings):
    lead = _lead()
    places = FakePlaces(geocode=geocode_result())
    llm = FakeLLM([VISION_REPLY])
    with pytest.raises(StageBlockedError):
        run_stage(lead["id"], "property", settings=settings, places=places, llm_client=llm)
    assert places.calls == []
    assert llm.calls == []
    assert db.get_lead(lead["id"]).get("property_analysis") is None


def test_geo_requires_address(settings):
    lead = db.create_lead({"company_name": "Nowhere Inc"})
    with pytest.raises(InvalidInputError):
        run_stage(lead["id"], "geo", settings=settings, places=FakePlaces())


def test_geo_stage_persists_payload(settings):
    lead = _lead()
    places = FakePlaces(geocode=geocode_result())
    payload = run_stage(lead["id"], "geo", settings=settings, places=places, llm_client=FakeLLM(["{}"]))

    assert payload["lat"] == 30.27
    assert payload["city"] == "Austin"
    assert payload["state"] == "TX"
    assert payload["region"] == "South"
    assert "key=" not in payload["image_url"]
    assert payload["business_intelligence"] is None

    stored = db.get_lead(lead["id"])
    assert stored["geo_enrichment"]["lng"] == -97.74
    assert stored["stage_runs"]["geo"]["state"] == "complete"


def test_failed_stage_records_reason_and_keeps_earlier_payload(settings):
    lead = _lead()
    places = FakePlaces(geocode=geocode_result())
    run_stage(lead["id"], "geo", settings=settings, places=places)

    with pytest.raises(ParseFailureError):
        run_stage(lead["id"], "property", settings=settings, places=places, llm_client=FakeLLM(["not json"]))

    stored = db.get_lead(lead["id"])
    assert stored["geo_enrichment"]
    assert not stored.get("property_analysis")
    assert stage_state(stored, "property").status == StageStatus.FAILED


# =============================================================================
# FULL ANALYSIS
# =============================================================================

def test_full_analysis_runs_all_stages_in_order(settings):
    lead = _lead()
    places = FakePlaces(geocode=geocode_result())
    llm = FakeLLM([VISION_REPLY, SERVICE_REPLY])

    result = run_full_analysis(lead["id"], settings=settings, places=places, llm_client=llm)

    assert result["completed"] is True
    assert [s["outcome"] for s in result["stages"]] == ["completed", "completed", "completed"]
    stored = db.get_lead(lead["id"])
    assert stored["property_analysis"]["lot_size_acres"] == 4.5
    assert stored["property_analysis"]["analysis_metadata"]["mode"] == "single-image"
    assert stored["service_mapping"]["executive_summary"].startswith("Strong fit")
    assert stored["service_mapping"]["competitor_search_count"] == 0


def test_full_analysis_stops_at_first_failure(settings):
    lead = _lead()
    places = FakePlaces(geocode=geocode_result())
    result = run_full_analysis(lead["id"], settings=settings, places=places, llm_client=FakeLLM(["oops"]))

    assert result["completed"] is False
    outcomes = {s["stage"]: s["outcome"] for s in result["stages"]}
    assert outcomes == {"geo": "completed", "property": "failed", "service": "not_attempted"}
    assert result["error"]["kind"] == "parse_failure"
    assert db.get_lead(lead["id"])["geo_enrichment"]


def test_full_analysis_cancelled_before_start(settings):
    lead = _lead()
    token = CancelToken()
    token.cancel()
    places = FakePlaces(geocode=geocode_result())
    result = run_full_analysis(lead["id"], settings=settings, cancel=token, places=places)

    assert result["stages"][0]["outcome"] == "cancelled"
    assert result["error"]["kind"] == "cancelled"
    assert places.calls == []


class _BrokenGeocoder(FakePlaces):
    def geocode(self, address):
        raise TypeError("unexpected geocoder response")


def test_full_analysis_reports_unexpected_error_as_failed_stage(settings):
    lead = _lead()
    result = run_full_analysis(lead["id"], settings=settings, places=_BrokenGeocoder(), llm_client=FakeLLM(["{}"]))

    assert result["completed"] is False
    outcomes = {s["stage"]: s["outcome"] for s in result["stages"]}
    assert outcomes == {"geo": "failed", "property": "not_attempted", "service": "not_attempted"}
    assert result["error"]["kind"] == "upstream_unavailable"
    assert "unexpected geocoder response" in result["error"]["message"]
    assert db.get_lead(lead["id"])["stage_runs"]["geo"]["state"] == "failed"
