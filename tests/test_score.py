"""
Unit tests for the opportunity scoring engine.

Fixtures:
  a) Brand-new cold lead with no enrichment -> timing 55, deterministic composite
  b) Hot proposal lead at a golf course with 600 employees -> fit at the top, value in the enterprise band
  c) Extreme inputs under random jitter -> every score stays in range
"""

from datetime import datetime, timedelta, timezone

from sales_intel.noise import NoNoise, RandomNoise
from sales_intel.score import (
    ScoreCache,
    estimate_value,
    get_scoring_summary,
    round_half_up,
    score_lead,
    score_leads,
    win_probability,
)

NOW = datetime(2026, 5, 15, 12, 0, tzinfo=timezone.utc)


def _new_lead(**overrides):
    lead = {
        "id": "lead-new",
        "company_name": "Green Acres HOA",
        "status": "new",
        "created_at": NOW.isoformat(),
    }
    lead.update(overrides)
    return lead


def _hot_lead():
    return {
        "id": "lead-hot",
        "company_name": "Pinehurst Country Club",
        "status": "proposal",
        "qualification_level": "hot",
        "enrichment_status": "complete",
        "apollo_id": "ap-1",
        "employee_count": 600,
        "email": "gm@pinehurst.example",
        "phone": "+15555550100",
        "linkedin_url": "https://linkedin.com/in/gm",
        "title": "General Manager",
        "created_at": (NOW - timedelta(days=1)).isoformat(),
        "enriched_at": (NOW - timedelta(days=1)).isoformat(),
        "geo_enrichment": {"lat": 35.19, "lng": -79.47},
        "property_analysis": {"property_type": "golf_course", "property_quality": "Excellent"},
        "service_mapping": {
            "context": {"opportunity_score": "High"},
            "service_fit_analysis": "x" * 600,
        },
    }


def test_brand_new_cold_lead_timing():
    scored = score_lead(_new_lead(), [], noise=NoNoise(), now=NOW)
    assert scored.timing_score == 55  # 30 base + 30 brand new - 5 cold
    assert scored.company_fit_score == 25
    assert scored.engagement_score == 20
    assert "Brand new lead" in scored.score_breakdown["timing"]["reasoning"]
    assert "Cold - needs warming" in scored.score_breakdown["timing"]["reasoning"]


def test_composite_is_weighted_blend_without_jitter():
    scored = score_lead(_new_lead(), [], noise=NoNoise(), now=NOW)
    expected = round_half_up(0.45 * 25 + 0.30 * 20 + 0.25 * 55)
    assert scored.opportunity_score == expected == 31
    # new status: 31 * 0.4 * 0.5 = 6.2
    assert scored.win_probability == 6


def test_hot_lead_scores_near_top():
    scored = score_lead(_hot_lead(), [], noise=NoNoise(), now=NOW)
    assert scored.company_fit_score == 100
    assert scored.timing_score == 100
    assert 60000 <= scored.estimated_value <= 210000
    assert scored.estimated_value == 150000  # (60000 + 40000) * 1.5
    assert "High-value property type: golf_course" in scored.score_breakdown["company_fit"]["reasoning"]
    assert "HOT lead - immediate action" in scored.score_breakdown["timing"]["reasoning"]


def test_estimated_value_is_multiple_of_500():
    noise = RandomNoise(seed=7)
    leads = [
        _new_lead(),
        _hot_lead(),
        _new_lead(id="x", property_analysis={"property_type": "office_park"}, employee_count=150),
        _new_lead(id="y", enrichment_status="complete"),
        _new_lead(id="z", apollo_id="ap"),
    ]
    for lead in leads:
        for _ in range(20):
            assert estimate_value(lead, noise) % 500 == 0


def test_ai_estimate_overrides_ranges():
    lead = _new_lead(service_mapping={"context": {"estimated_annual_value": "$42,300 - $55,000"}})
    assert estimate_value(lead, NoNoise()) == 42500
    # only a dollar string is parsed; a bare number keeps the default
    lead = _new_lead(service_mapping={"context": {"estimated_annual_value": 18000}})
    assert estimate_value(lead, NoNoise()) == 15000


def test_scores_stay_in_range_for_extreme_inputs():
    noise = RandomNoise(seed=1)
    old = (NOW - timedelta(days=400)).isoformat()
    activities = [
        {"id": f"a{i}", "lead_id": "lead-hot", "created_at": NOW.isoformat()} for i in range(30)
    ]
    extreme_hot = dict(_hot_lead(), title="CEO and Founder")
    extreme_cold = _new_lead(id="cold", status="lost", created_at=old, employee_count="not a number")
    for _ in range(50):
        for scored in score_leads([extreme_hot, extreme_cold], activities, noise=noise, now=NOW):
            for value in (scored.company_fit_score, scored.engagement_score, scored.timing_score,
                          scored.opportunity_score):
                assert 0 <= value <= 100
            assert 5 <= scored.win_probability <= 95


def test_negative_employee_count_and_future_created_at_stay_in_range():
    future = (NOW + timedelta(days=3650)).isoformat()
    lead = _new_lead(employee_count=-250, created_at=future, enriched_at=future, qualification_level="hot")
    for noise in (NoNoise(), RandomNoise(seed=3)):
        scored = score_lead(lead, [{"id": "a1", "lead_id": "lead-new", "created_at": future}], noise=noise, now=NOW)
        for value in (scored.company_fit_score, scored.engagement_score, scored.timing_score,
                      scored.opportunity_score):
            assert 0 <= value <= 100
        assert 5 <= scored.win_probability <= 95
        assert not any("employees" in r for r in scored.score_breakdown["company_fit"]["reasoning"])
        assert scored.estimated_value > 0


def test_win_probability_status_multipliers():
    assert win_probability(100, "won", NoNoise()) == 92
    assert win_probability(100, "lost", NoNoise()) == 5
    assert win_probability(50, "qualified", NoNoise()) == 26  # 50 * 0.4 * 1.3
    assert win_probability(50, None, NoNoise()) == 20


def test_engagement_counts_recent_activity_and_channels():
    activities = [
        {"id": "a1", "lead_id": "lead-new", "created_at": (NOW - timedelta(days=1)).isoformat()},
        {"id": "a2", "lead_id": "lead-new", "created_at": (NOW - timedelta(days=2)).isoformat()},
        {"id": "a3", "lead_id": "lead-new", "created_at": (NOW - timedelta(days=3)).isoformat()},
    ]
    lead = _new_lead(email="a@b.example", title="Facilities Director")
    scored = score_lead(lead, activities, noise=NoNoise(), now=NOW)
    # 20 + 25 (3 recent) + 8 (3 total) + 10 (email) + 10 (director)
    assert scored.engagement_score == 73
    assert "3 recent activities - very engaged" in scored.score_breakdown["engagement"]["reasoning"]


def test_score_leads_rejects_non_list():
    assert score_leads(None) == []
    assert score_leads({"id": "x"}) == []
    assert score_leads([]) == []


def test_score_leads_matches_activities_by_lead_id():
    activities = [{"id": "a1", "lead_id": "other", "created_at": NOW.isoformat()}]
    scored = score_leads([_new_lead()], activities, now=NOW)
    assert scored[0].engagement_score == 20


def test_summary_on_empty_and_batch():
    assert get_scoring_summary([])["total_leads"] == 0
    scored = score_leads([_new_lead(), _hot_lead()], now=NOW)
    summary = get_scoring_summary(scored)
    assert summary["total_leads"] == 2
    assert summary["pipeline_value"] == sum(s.estimated_value for s in scored)
    assert summary["max_score"] >= summary["min_score"]


def test_to_dict_merges_lead_fields():
    out = score_lead(_new_lead(), now=NOW).to_dict()
    assert out["company_name"] == "Green Acres HOA"
    assert set(out["score_breakdown"]) == {"company_fit", "engagement", "timing"}


def test_cache_reuses_deterministic_results():
    cache = ScoreCache()
    lead = _new_lead()
    first = score_leads([lead], now=NOW, cache=cache)[0]
    second = score_leads([lead], now=NOW, cache=cache)[0]
    assert first is second
    assert cache.hits == 1 and cache.misses == 1

    changed = dict(lead, qualification_level="hot")
    third = score_leads([changed], now=NOW, cache=cache)[0]
    assert third is not first
    assert cache.misses == 2


def test_cache_bypassed_under_jitter():
    cache = ScoreCache()
    score_leads([_new_lead()], noise=RandomNoise(3), now=NOW, cache=cache)
    assert cache.hits == 0 and cache.misses == 0
