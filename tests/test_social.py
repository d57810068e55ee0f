"""
Social presence analyzer: answer interpretation, per-platform failures and
insight synthesis fallbacks.
"""

import pytest

from fakes import FakeLLM, FakeResponse, FakeSession
from sales_intel.cancel import CancelToken
from sales_intel.errors import CancelledError
from sales_intel.social import (
    FALLBACK_INSIGHTS,
    PERPLEXITY_URL,
    PLATFORMS,
    analyze_social_presence,
    interpret_answer,
    search_platform_presence,
)


def _answer(text):
    return FakeResponse(data={"choices": [{"message": {"content": text}}]})


def test_interpret_answer_extracts_url():
    out = interpret_answer("linkedin", "Their page is https://www.linkedin.com/company/acme-lawn).")
    assert out["found"] is True
    assert out["url"] == "https://www.linkedin.com/company/acme-lawn"


def test_interpret_answer_not_found_is_case_insensitive():
    assert interpret_answer("yelp", "NOT FOUND")["found"] is False
    assert interpret_answer("facebook", "I could not find an official page.")["found"] is False
    assert interpret_answer("instagram", "They Don't appear... Unable To Find it")["found"] is False


def test_found_without_url():
    out = interpret_answer("facebook", "They are active on Facebook as Acme Lawn.")
    assert out["found"] is True
    assert out["url"] is None


def test_search_platform_presence_error_statuses():
    session = FakeSession({PERPLEXITY_URL: FakeResponse(status_code=401)})
    out = search_platform_presence("Acme", "Austin", "TX", "yelp", "bad", session=session)
    assert out["error"] == "Invalid Perplexity API key - check Settings"
    assert out["found"] is False

    session = FakeSession({PERPLEXITY_URL: FakeResponse(status_code=503)})
    out = search_platform_presence("Acme", "Austin", "TX", "yelp", "key", session=session)
    assert out["error"] == "API error: 503"


def test_search_platform_presence_transport_error():
    out = search_platform_presence("Acme", "Austin", "TX", "yelp", "key", session=FakeSession())
    assert out["found"] is False
    assert out["error"]


def test_all_platforms_not_found_gives_zero_score():
    session = FakeSession({PERPLEXITY_URL: _answer("NOT FOUND")})
    llm = FakeLLM([{"summary": "Weak presence.", "gaps": ["linkedin", "facebook"]}])
    result = analyze_social_presence("Acme", "Austin", "TX", "key", "sk", session=session, llm_client=llm, delay=0)

    assert result["presence_score"] == 0
    assert set(result["platforms"]) == set(PLATFORMS)
    assert all(p["search_attempted"] for p in result["platforms"].values())
    insights = result["ai_insights"]
    assert insights["summary"] == "Weak presence."
    assert insights["gaps"] == ["linkedin", "facebook"]
    # missing keys filled from the fallback
    assert insights["opportunities"] == FALLBACK_INSIGHTS["opportunities"]
    assert len(result["web_research_results"]) == 4


def test_synthesis_failure_uses_fallback():
    def reply(call):
        body = call["json"]["messages"][0]["content"]
        if "LinkedIn" in body:
            return _answer("https://linkedin.com/company/acme")
        return _answer("not found")

    session = FakeSession({PERPLEXITY_URL: reply})
    result = analyze_social_presence("Acme", "Austin", "TX", "key", "sk", session=session,
                                     llm_client=FakeLLM(["garbage"]), delay=0)
    assert result["presence_score"] == 1
    assert result["platforms"]["linkedin"]["profile_url"] == "https://linkedin.com/company/acme"
    assert result["ai_insights"] == FALLBACK_INSIGHTS


def test_cancel_stops_between_platforms():
    token = CancelToken()

    def reply(call):
        token.cancel()
        return _answer("not found")

    session = FakeSession({PERPLEXITY_URL: reply})
    with pytest.raises(CancelledError):
        analyze_social_presence("Acme", "Austin", "TX", "key", "sk", session=session, delay=0, cancel=token)
    assert len(session.calls) == 1
