"""
Social presence analysis for a target company.

Asks Perplexity's search-augmented `sonar` model whether the company has a
LinkedIn, Facebook, Yelp and Instagram presence (one platform at a time with
a fixed delay), then has OpenAI synthesize sales talking points. Platform
failures become per-platform errors; a synthesis failure becomes fixed
fallback insights.
"""

import re
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from .cancel import CancelToken, check, pause
from .errors import IntelError
from .llm import chat_json

logger = logging.getLogger(__name__)

PERPLEXITY_URL = "https://api.perplexity.ai/chat/completions"
PERPLEXITY_MODEL = "sonar"
SYNTHESIS_MODEL = "gpt-4o-mini"
REQUEST_TIMEOUT = 30
PLATFORM_DELAY = 1.0
SNIPPET_CHARS = 300

PLATFORMS = ("linkedin", "facebook", "yelp", "instagram")

PLATFORM_QUERIES = {
    "linkedin": 'Find the official LinkedIn company page URL for "{name}" located in {city}, {state}. '
                'Return the exact LinkedIn URL if found, or "NOT FOUND" if the company has no LinkedIn presence.',
    "facebook": 'Find the official Facebook business page URL for "{name}" in {city}, {state}. '
                'Return the exact Facebook URL if found, or "NOT FOUND" if the company has no Facebook page.',
    "yelp": 'Find the Yelp business page URL for "{name}" in {city}, {state}. '
            'Return the exact Yelp URL if found, or "NOT FOUND" if the company is not on Yelp.',
    "instagram": 'Find the official Instagram account URL for "{name}" in {city}, {state}. '
                 'Return the exact Instagram URL if found, or "NOT FOUND" if the company has no Instagram presence.',
}

NOT_FOUND_INDICATORS = (
    "not found",
    "no linkedin",
    "no facebook",
    "no yelp",
    "no instagram",
    "does not have",
    "doesn't have",
    "no official",
    "could not find",
    "unable to find",
)

URL_PATTERNS = {
    "linkedin": re.compile(r"https?://(www\.)?linkedin\.com/company/\S+", re.IGNORECASE),
    "facebook": re.compile(r"https?://(www\.)?facebook\.com/\S+", re.IGNORECASE),
    "yelp": re.compile(r"https?://(www\.)?yelp\.com/biz/\S+", re.IGNORECASE),
    "instagram": re.compile(r"https?://(www\.)?instagram\.com/\S+", re.IGNORECASE),
}
_TRAILING_PUNCT = re.compile(r"[),.\]}>]+$")

FALLBACK_INSIGHTS = {
    "summary": "Unable to generate AI insights due to an error.",
    "strengths": [],
    "gaps": [],
    "opportunities": ["Establish or improve social media presence"],
    "recommended_talking_points": ["Discuss social media marketing strategy"],
}


def _fallback_insights() -> Dict[str, Any]:
    return {k: list(v) if isinstance(v, list) else v for k, v in FALLBACK_INSIGHTS.items()}


def interpret_answer(platform: str, answer: str) -> Dict[str, Any]:
    """Decide found / not found and pull the profile URL out of a search answer."""
    lowered = (answer or "").lower()
    found = not any(indicator in lowered for indicator in NOT_FOUND_INDICATORS)
    url = None
    if found and platform in URL_PATTERNS:
        match = URL_PATTERNS[platform].search(answer)
        if match:
            url = _TRAILING_PUNCT.sub("", match.group(0))
    return {"found": found, "url": url, "snippet": (answer or "")[:SNIPPET_CHARS], "error": None}


def search_platform_presence(
    company_name: str,
    city: str,
    state: str,
    platform: str,
    perplexity_key: str,
    session: Optional[requests.Session] = None,
) -> Dict[str, Any]:
    """One Perplexity lookup. Never raises; failures come back in "error"."""
    session = session or requests.Session()
    template = PLATFORM_QUERIES.get(platform, 'Find {platform} for "{name}" in {city}, {state}')
    query = template.format(name=company_name, city=city, state=state, platform=platform)
    logger.info("Searching %s presence for %s", platform, company_name)
    try:
        response = session.post(
            PERPLEXITY_URL,
            headers={"Authorization": f"Bearer {perplexity_key}", "Content-Type": "application/json"},
            json={
                "model": PERPLEXITY_MODEL,
                "messages": [{"role": "user", "content": query}],
                "temperature": 0.2,
                "max_tokens": 300,
            },
            timeout=REQUEST_TIMEOUT,
        )
        if response.status_code == 401:
            logger.error("Perplexity rejected the API key")
            return {"found": False, "url": None, "snippet": None,
                    "error": "Invalid Perplexity API key - check Settings"}
        if response.status_code >= 400:
            logger.error("Perplexity API error for %s: %s", platform, response.status_code)
            return {"found": False, "url": None, "snippet": None, "error": f"API error: {response.status_code}"}
        data = response.json()
        answer = (((data.get("choices") or [{}])[0].get("message") or {}).get("content")) or ""
    except (requests.exceptions.RequestException, ValueError, AttributeError, IndexError) as e:
        logger.error("Error searching %s: %s", platform, e)
        return {"found": False, "url": None, "snippet": None, "error": str(e)}

    logger.debug("%s response: %s", platform, answer[:150])
    return interpret_answer(platform, answer)


def synthesize_insights(
    company_name: str,
    platform_data: Dict[str, Dict[str, Any]],
    openai_key: Optional[str],
    llm_client: Optional[Any] = None,
) -> Dict[str, Any]:
    """OpenAI summary of the presence data; FALLBACK_INSIGHTS on any failure."""
    lines = []
    for platform, data in platform_data.items():
        mark = "Found" if data.get("exists") else "Not found"
        url = f" ({data['profile_url']})" if data.get("profile_url") else ""
        lines.append(f"{platform}: {mark}{url}")

    prompt = f"""You are analyzing the social media presence of a landscaping/lawn care company for sales prospecting purposes.

COMPANY: {company_name}

SOCIAL MEDIA PRESENCE:
{chr(10).join(lines)}

TASK: Provide a strategic analysis of their social media presence to help a salesperson craft a compelling pitch.

Respond in JSON format:
{{
  "summary": "2-sentence overview of their social presence",
  "strengths": ["array of 1-3 strengths if they have good presence"],
  "gaps": ["array of 1-3 platforms they're missing or underutilizing"],
  "opportunities": ["array of 2-3 specific opportunities to improve their presence"],
  "recommended_talking_points": ["array of 2-3 specific talking points a salesperson could use, referencing their actual presence"]
}}

Be specific and actionable. If they have weak presence overall, focus on competitive disadvantages and missed opportunities."""

    try:
        insights = chat_json(
            [
                {"role": "system", "content": "You are a strategic sales intelligence analyst specializing in "
                                              "social media presence analysis. Always respond with valid JSON."},
                {"role": "user", "content": prompt},
            ],
            api_key=openai_key,
            model=SYNTHESIS_MODEL,
            temperature=0.7,
            max_tokens=1000,
            client=llm_client,
        )
    except IntelError as e:
        logger.error("Social insight synthesis failed: %s", e)
        return _fallback_insights()

    out = _fallback_insights()
    out["summary"] = insights.get("summary") or out["summary"]
    for key in ("strengths", "gaps", "opportunities", "recommended_talking_points"):
        if isinstance(insights.get(key), list):
            out[key] = insights[key]
    return out


def analyze_social_presence(
    company_name: str,
    city: str,
    state: str,
    perplexity_key: str,
    openai_key: Optional[str],
    session: Optional[requests.Session] = None,
    llm_client: Optional[Any] = None,
    delay: float = PLATFORM_DELAY,
    cancel: Optional[CancelToken] = None,
) -> Dict[str, Any]:
    """
    Check all four platforms sequentially and synthesize insights.

    Returns:
        dict with analyzed_at, platforms, presence_score (0-4), ai_insights,
        web_research_results

    Raises:
        CancelledError: if the token fires between platform lookups
    """
    logger.info("Starting social presence analysis for %s", company_name)
    platform_data: Dict[str, Dict[str, Any]] = {}
    research: List[Dict[str, Any]] = []

    for i, platform in enumerate(PLATFORMS):
        check(cancel, "social presence analysis")
        found = search_platform_presence(company_name, city, state, platform, perplexity_key, session=session)
        platform_data[platform] = {
            "exists": found["found"],
            "profile_url": found["url"],
            "snippet": found["snippet"],
            "search_attempted": True,
            "error": found["error"],
        }
        research.append({
            "platform": platform,
            "query": f"{platform} presence for {company_name}",
            "found": found["found"],
            "result": found["snippet"] or found["error"] or "No data",
        })
        if i < len(PLATFORMS) - 1:
            pause(cancel, delay)

    presence_score = sum(1 for p in platform_data.values() if p["exists"])
    logger.info("Presence score for %s: %s/%s platforms", company_name, presence_score, len(PLATFORMS))

    return {
        "analyzed_at": datetime.now(timezone.utc).isoformat(),
        "platforms": platform_data,
        "presence_score": presence_score,
        "ai_insights": synthesize_insights(company_name, platform_data, openai_key, llm_client=llm_client),
        "web_research_results": research,
    }
