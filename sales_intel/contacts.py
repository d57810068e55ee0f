"""
Contact enrichment through Apollo.

people/match reveals the contact (email, phone, LinkedIn, title); the
organization call fills the company address and domain. When an OpenAI key
is configured, remaining address gaps are filled from a company lookup.
The lead's pipeline status is left alone; only enrichment_status changes.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from .config import Settings
from .errors import ConfigMissingError, IntelError, InvalidInputError, RateLimitedError, UpstreamError
from .llm import chat_json

logger = logging.getLogger(__name__)

APOLLO_PEOPLE_MATCH_URL = "https://api.apollo.io/v1/people/match"
APOLLO_ORG_ENRICH_URL = "https://api.apollo.io/v1/organizations/enrich"
REQUEST_TIMEOUT = 30


def _apollo_post(session: requests.Session, url: str, payload: Dict[str, Any], api_key: str) -> requests.Response:
    return session.post(
        url,
        json=payload,
        headers={"Content-Type": "application/json", "Cache-Control": "no-cache", "X-Api-Key": api_key},
        timeout=REQUEST_TIMEOUT,
    )


def _json_body(response: requests.Response, what: str) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise UpstreamError(f"{what} returned invalid JSON: {e}", detail={"status": response.status_code})
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise UpstreamError(f"{what} returned an unexpected response body", detail={"status": response.status_code})
    return data


def clean_domain(value: Optional[str]) -> Optional[str]:
    if not value or not isinstance(value, str):
        return None
    domain = value.strip()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    domain = domain.rstrip("/").strip()
    if not domain or "undefined" in domain or domain == "null":
        return None
    return domain


def _person_fields(person: Dict[str, Any], lead: Dict[str, Any]) -> Dict[str, Any]:
    phones = person.get("phone_numbers") or []
    first = person.get("first_name") or lead.get("first_name")
    last = person.get("last_name") or lead.get("last_name")
    return {
        "full_name": f"{first or ''} {last or ''}".strip() or lead.get("full_name"),
        "first_name": first,
        "last_name": last,
        "email": person.get("email") or lead.get("email"),
        "phone": (phones[0].get("sanitized_number") if phones else None) or lead.get("phone"),
        "linkedin_url": person.get("linkedin_url") or lead.get("linkedin_url"),
        "title": person.get("title") or lead.get("title"),
    }


def _org_fields(org: Dict[str, Any], lead: Dict[str, Any], domain: Optional[str]) -> Dict[str, Any]:
    return {
        "company_name": org.get("name") or lead.get("company_name"),
        "company_website": org.get("website_url") or lead.get("company_domain"),
        "company_street": org.get("street_address") or lead.get("company_street"),
        "company_city": org.get("city") or lead.get("company_city"),
        "company_state": org.get("state") or lead.get("company_state"),
        "company_postal_code": org.get("postal_code") or lead.get("company_postal_code"),
        "company_country": org.get("country") or lead.get("company_country"),
        "company_domain": org.get("primary_domain") or domain,
        "employee_count": org.get("estimated_num_employees") or lead.get("employee_count"),
    }


def _ai_fill(fields: Dict[str, Any], settings: Settings, llm_client: Optional[Any]) -> bool:
    """Fill missing company fields from an AI company lookup. True when it parsed."""
    company = fields.get("company_name")
    if not company:
        return False
    try:
        data = chat_json(
            [
                {"role": "system", "content": (
                    "You are a business research assistant. When given a company name, you provide accurate "
                    "information including website, phone, description, and full address. Respond ONLY with valid "
                    'JSON in this exact format: {"website": "https://example.com", "phone": "+1-555-555-5555", '
                    '"description": "Brief description of what the company does", "street": "123 Main St", '
                    '"city": "City Name", "state": "ST", "zip": "12345", "country": "Country"}. '
                    "If you cannot find information for a field, use null."
                )},
                {"role": "user", "content": f"Research this company and provide complete information: {company}"},
            ],
            api_key=settings.ai_api_key,
            model=settings.ai_model,
            temperature=0.3,
            max_tokens=600,
            client=llm_client,
        )
    except IntelError as e:
        logger.warning("AI company lookup failed for %s: %s", company, e)
        return False
    for key, src in (("company_website", "website"), ("company_phone", "phone"), ("company_street", "street"),
                     ("company_city", "city"), ("company_state", "state"), ("company_postal_code", "zip"),
                     ("company_country", "country")):
        if not fields.get(key) and data.get(src):
            fields[key] = data[src]
    if data.get("description"):
        fields["company_description"] = data["description"]
    return True


def enrich_contact(
    lead: Dict[str, Any],
    settings: Settings,
    session: Optional[requests.Session] = None,
    llm_client: Optional[Any] = None,
) -> Dict[str, Any]:
    """
    Enrich a lead through Apollo; returns the fields to merge into the lead.

    Raises:
        ConfigMissingError: no Apollo key
        InvalidInputError: lead has no apollo_id
        RateLimitedError / UpstreamError: people/match failed
    """
    if not settings.enrichment_api_key:
        raise ConfigMissingError("Apollo API key not configured. Please configure it in Settings.")
    apollo_id = lead.get("apollo_id")
    if not apollo_id:
        raise InvalidInputError("Lead missing Apollo person ID - cannot enrich")

    session = session or requests.Session()
    try:
        response = _apollo_post(session, APOLLO_PEOPLE_MATCH_URL, {"id": apollo_id}, settings.enrichment_api_key)
    except requests.exceptions.RequestException as e:
        raise UpstreamError(f"Apollo people match failed: {e}")
    if response.status_code == 429:
        raise RateLimitedError("Apollo rate limit reached", detail={"status": 429})
    if response.status_code == 401:
        raise ConfigMissingError("Apollo rejected the API key", detail={"status": 401})
    if response.status_code >= 400:
        raise UpstreamError(
            f"Apollo people match failed ({response.status_code}): {response.text or 'No error message'}",
            detail={"status": response.status_code, "apollo_id": apollo_id},
        )
    person = _json_body(response, "Apollo people match").get("person") or {}
    person_org = person.get("organization") or {}
    fields = _person_fields(person, lead)

    org_id = lead.get("organization_id") or person_org.get("id")
    domain = clean_domain(lead.get("company_domain") or person_org.get("primary_domain") or person_org.get("website_url"))
    org_payload: Dict[str, Any] = {}
    if org_id and str(org_id).strip():
        org_payload["organization_id"] = str(org_id).strip()
    if domain:
        org_payload["domain"] = domain

    org_ok = False
    if org_payload:
        try:
            org_response = _apollo_post(session, APOLLO_ORG_ENRICH_URL, org_payload, settings.enrichment_api_key)
            if org_response.status_code < 400:
                org = _json_body(org_response, "Apollo organization enrich").get("organization") or {}
                fields.update(_org_fields(org, lead, domain))
                org_ok = True
            else:
                logger.warning("Apollo organization enrich failed (%s)", org_response.status_code)
        except (requests.exceptions.RequestException, UpstreamError) as e:
            logger.warning("Apollo organization enrich error: %s", e)
    else:
        logger.info("No organization_id or domain for lead %s; skipping organization enrichment", lead.get("id"))

    ai_ok = False
    if settings.ai_api_key and settings.ai_provider == "openai":
        merged = {**lead, **fields}
        ai_ok = _ai_fill(merged, settings, llm_client)
        for key in ("company_website", "company_phone", "company_street", "company_city", "company_state",
                    "company_postal_code", "company_country", "company_description"):
            if merged.get(key) is not None:
                fields[key] = merged[key]

    fields["enrichment_status"] = "complete" if (org_ok or ai_ok) else "partial"
    fields["enriched_at"] = datetime.now(timezone.utc).isoformat()
    logger.info("Enriched lead %s (%s)", lead.get("id"), fields["enrichment_status"])
    return fields
