"""
Research aggregator: web search, place details and review themes.
"""

from fakes import FakePlaces, FakeResponse, FakeSession
from sales_intel.research import CUSTOM_SEARCH_URL, analyze_review_themes, perform_real_research, search_web

NOW = 1_800_000_000.0
DAY = 86400


def test_search_web_skips_without_engine_id_or_key():
    session = FakeSession()
    assert search_web("Acme", "Austin", "key", None, session=session) == []
    assert search_web("Acme", "Austin", None, "cx", session=session) == []
    assert session.calls == []


def test_search_web_collects_items_per_query_type():
    item = {"title": "Acme wins award", "snippet": "...", "link": "https://news/1", "displayLink": "news"}
    session = FakeSession({CUSTOM_SEARCH_URL: FakeResponse(data={"items": [item]})})
    results = search_web("Acme", "Austin", "key", "cx", session=session)
    assert len(session.calls) == 3
    assert [r["query_type"] for r in results] == ["news_events", "recognition", "social_media"]
    assert results[0]["source"] == "news"
    assert session.calls[0]["params"]["cx"] == "cx"


def test_search_web_stops_at_api_error():
    session = FakeSession({CUSTOM_SEARCH_URL: FakeResponse(data={"error": {"message": "API key not valid"}})})
    assert search_web("Acme", "Austin", "key", "cx", session=session) == []
    assert len(session.calls) == 1


def test_review_themes_buckets():
    reviews = [
        {"text": "Beautiful patio and garden", "rating": 5, "time": NOW - 10 * DAY, "author_name": "A"},
        {"text": "Lawn looked overgrown and messy", "rating": 2, "time": NOW - 5 * DAY},
        {"text": "Nice staff", "rating": 5, "time": NOW - 200 * DAY},
    ]
    themes = analyze_review_themes(reviews, now=NOW)
    assert len(themes["outdoor_mentions"]) == 1
    assert themes["outdoor_mentions"][0]["recent"] is True
    assert len(themes["recent_praise"]) == 1
    assert len(themes["recent_concerns"]) == 1


def test_perform_real_research_combines_sections():
    details = {
        "website": "https://acme.example",
        "formatted_phone_number": "(512) 555-0100",
        "url": "https://maps.google.com/?cid=1",
        "editorial_summary": {"overview": "Office campus"},
        "reviews": [{"text": "Lovely outdoor seating", "rating": 5, "time": NOW - DAY}] * 20,
    }
    places = FakePlaces(details={"place-1": details})
    result = perform_real_research("Acme", "Austin", place_id="place-1", api_key="key", places=places, now=NOW)

    assert result["web_search_results"] == []
    assert result["has_web_results"] is False
    assert result["enhanced_places"]["editorial_summary"] == "Office campus"
    assert len(result["enhanced_places"]["recent_reviews"]) == 15
    assert result["has_review_insights"] is True
    assert "error" not in result


def test_perform_real_research_without_place_id():
    result = perform_real_research("Acme", "Austin", now=NOW)
    assert result["enhanced_places"] == {}
    assert result["has_review_insights"] is False
