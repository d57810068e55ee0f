"""
Campaign flow: sequence steps, lead enrollment, bulk contact enrichment and
AI message generation.

prepare_campaign() is the long-running path used by the background worker:

    checking   -> find leads whose enrichment_status is not complete
    enriching  -> enrich them one at a time with a short cancellable delay
    generating -> write one message per lead x step
    preview    -> campaign ready for review
"""

import re
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from . import db
from .cancel import CancelToken, check, pause
from .config import Settings, get_settings
from .contacts import enrich_contact
from .errors import CancelledError, ConfigMissingError, IntelError, InvalidInputError, NotFoundError
from .llm import chat_json

logger = logging.getLogger(__name__)

MESSAGE_MODEL = "gpt-4o"
MESSAGE_TEMPERATURE = 0.8
MESSAGE_MAX_TOKENS = 800
ENRICH_DELAY = 0.5

SYSTEM_PROMPT = (
    "You are an expert B2B sales email copywriter. Write highly personalized, compelling emails "
    "that reference specific business insights. Respond with a JSON object: "
    '{"subject": "...", "body": "..."}'
)

_TEMPLATE_VAR = re.compile(r"\{\{\s*(\w+)\s*\}\}")

ProgressFn = Callable[[Dict[str, Any]], None]


# =============================================================================
# CAMPAIGN CRUD
# =============================================================================

def require_campaign(campaign_id: str) -> Dict[str, Any]:
    campaign = db.get_campaign(campaign_id)
    if not campaign:
        raise NotFoundError(f"Campaign {campaign_id} not found")
    return campaign


def create_campaign(name: str, goal: Optional[str] = None) -> Dict[str, Any]:
    campaign = db.create_campaign(name, goal)
    logger.info("Created campaign %s (%s)", campaign["id"][:8], name)
    return campaign


def set_campaign_steps(campaign_id: str, steps: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Replace the campaign's sequence; steps are renumbered in the order given."""
    require_campaign(campaign_id)
    if not steps:
        raise InvalidInputError("At least one sequence step is required")
    for step in steps:
        if int(step.get("delay_days") or 0) < 0:
            raise InvalidInputError("delay_days cannot be negative")
    ordered = [dict(s, step_order=i) for i, s in enumerate(steps, start=1)]
    return db.replace_campaign_steps(campaign_id, ordered)


def add_campaign_leads(campaign_id: str, lead_ids: List[str]) -> Dict[str, int]:
    require_campaign(campaign_id)
    known = [lead_id for lead_id in lead_ids if db.get_lead(lead_id)]
    missing = len(lead_ids) - len(known)
    if missing:
        logger.warning("Skipping %d unknown lead ids for campaign %s", missing, campaign_id[:8])
    added = db.add_campaign_leads(campaign_id, known)
    return {"added": added, "skipped": len(lead_ids) - added}


# =============================================================================
# MESSAGE GENERATION
# =============================================================================

def _template_values(lead: Dict[str, Any], profile: Optional[Dict[str, Any]]) -> Dict[str, str]:
    return {
        "firstName": lead.get("first_name") or "there",
        "lastName": lead.get("last_name") or "",
        "companyName": lead.get("company_name") or "",
        "title": lead.get("title") or "",
        "ourCompany": (profile or {}).get("company_name") or "our company",
    }


def render_template(template: str, values: Dict[str, str]) -> str:
    """Substitute {{var}} placeholders; unknown variables are left as-is."""
    return _TEMPLATE_VAR.sub(lambda m: values.get(m.group(1), m.group(0)), template or "")


def _bullets(title: str, items: Any, limit: int = 3) -> List[str]:
    if not isinstance(items, list) or not items:
        return []
    lines = [f"\n{title}:"]
    for item in items[:limit]:
        if isinstance(item, dict):
            item = item.get("angle") or item.get("factor") or item.get("opportunity") or json.dumps(item)
        lines.append(f"- {item}")
    return lines


def build_message_prompt(
    lead: Dict[str, Any],
    step: Dict[str, Any],
    campaign: Dict[str, Any],
    profile: Optional[Dict[str, Any]] = None,
) -> str:
    """Assemble the personalization context for one lead and sequence step."""
    geo = lead.get("geo_enrichment") or {}
    prop = lead.get("property_analysis") or {}
    mapping = lead.get("service_mapping") or {}
    bi = geo.get("business_intelligence") or {}

    lines = ["Generate a highly personalized B2B sales email using the following enrichment data:", "", "=== PROSPECT ==="]
    lines.append(f"Name: {lead.get('first_name') or ''} {lead.get('last_name') or ''}".rstrip())
    lines.append(f"Title: {lead.get('title') or ''}")
    lines.append(f"Company: {lead.get('company_name') or ''}")
    if lead.get("company_description"):
        lines.append(f"Company Description: {lead['company_description']}")
    location = ", ".join(p for p in (lead.get("company_city"), lead.get("company_state")) if p)
    if location:
        lines.append(f"Location: {location}")

    if bi:
        lines.append("\n=== BUSINESS INTELLIGENCE ===")
        if bi.get("rating"):
            lines.append(f"Google Rating: {bi['rating']} ({bi.get('total_reviews') or 0} reviews)")
        if bi.get("description"):
            lines.append(f"Business Description: {bi['description']}")
        insights = bi.get("ai_insights") or {}
        lines += _bullets("Unique Features", insights.get("unique_features"))
        lines += _bullets("What Customers Love", insights.get("customer_love"))
        positive = [r for r in bi.get("reviews") or [] if (r.get("rating") or 0) >= 4][:3]
        if positive:
            lines.append("\nRecent Positive Reviews:")
            for i, review in enumerate(positive, start=1):
                lines.append(f"{i}. [{review.get('rating')}] {review.get('author')}: \"{(review.get('text') or '')[:150]}\"")

    if geo:
        lines.append("\n=== PROPERTY LOCATION ===")
        lines.append(f"Address: {geo.get('full_address') or ''}")
        lines.append(f"Region: {geo.get('region') or ''}")
    if prop.get("property_type"):
        lines.append(f"Property Type: {prop['property_type']}")
    vision = prop.get("vision_analysis") or {}
    if vision.get("key_observations"):
        lines.append(f"Key Observations: {', '.join(str(o) for o in vision['key_observations'])}")

    if mapping:
        lines.append("\n=== SERVICE RECOMMENDATIONS ===")
        if mapping.get("executive_summary"):
            lines.append(f"Summary: {mapping['executive_summary']}")
        for i, service in enumerate(mapping.get("recommended_services") or [], start=1):
            lines.append(f"{i}. {service.get('service_name') or service.get('name')}")
            if service.get("estimated_value"):
                lines.append(f"   Estimated Value: {service['estimated_value']}")
            if service.get("rationale"):
                lines.append(f"   Why: {service['rationale']}")
        lines += _bullets("Sales Angles", mapping.get("sales_angles"))
        lines += _bullets("Urgency Factors", mapping.get("urgency_factors"), limit=2)

    step_number = int(step.get("step_order") or 1)
    lines.append("\n=== CAMPAIGN CONTEXT ===")
    lines.append(f"Campaign Goal: {campaign.get('goal') or 'Generate interest and book meetings'}")
    lines.append(f"Email Type: {'Initial outreach' if step_number == 1 else f'Follow-up #{step_number}'}")
    if profile and (profile.get("company_name") or profile.get("value_proposition")):
        lines.append("\n=== YOUR COMPANY ===")
        if profile.get("company_name"):
            lines.append(f"Company: {profile['company_name']}")
        if profile.get("value_proposition"):
            lines.append(f"Value Proposition: {profile['value_proposition']}")

    lines.append("\n=== INSTRUCTIONS ===")
    lines.append(
        "Write a 150-200 word email that opens with something specific about their company, "
        "names one or two recommended services with their rationale, ties a property observation "
        "to a business need, keeps a conversational professional tone and ends with a soft call-to-action."
    )
    if step_number > 1:
        lines.append("This is a follow-up: acknowledge the previous email briefly and add new value.")
    return "\n".join(lines)


def _generate_one(lead, step, campaign, profile, settings: Settings, llm_client) -> Dict[str, str]:
    if step.get("subject_template") or step.get("body_template"):
        values = _template_values(lead, profile)
        subject = render_template(step.get("subject_template") or "Re: {{companyName}}", values)
        body = render_template(
            step.get("body_template") or "Hi {{firstName}},\n\nI wanted to reach out about {{companyName}}...", values
        )
        return {"subject": subject, "body": body}
    data = chat_json(
        [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_message_prompt(lead, step, campaign, profile)},
        ],
        api_key=settings.ai_api_key,
        model=MESSAGE_MODEL,
        temperature=MESSAGE_TEMPERATURE,
        max_tokens=MESSAGE_MAX_TOKENS,
        client=llm_client,
    )
    subject = (data.get("subject") or "").strip() or f"Quick question about {lead.get('company_name') or 'your company'}"
    body = (data.get("body") or "").strip()
    if not body:
        raise InvalidInputError("AI returned an empty message body")
    return {"subject": subject, "body": body}


def generate_messages(
    campaign_id: str,
    settings: Optional[Settings] = None,
    llm_client: Optional[Any] = None,
    cancel: Optional[CancelToken] = None,
    overwrite: bool = False,
    progress: Optional[ProgressFn] = None,
) -> Dict[str, int]:
    """
    Generate one message per enrolled lead and sequence step.

    Existing messages are kept unless overwrite is set. A failure for one
    message is counted and logged; the batch continues.

    Returns:
        {"generated", "skipped", "failed"}
    """
    campaign = require_campaign(campaign_id)
    steps = campaign["steps"]
    if not steps:
        raise InvalidInputError("No sequence steps found")
    if not campaign["lead_ids"]:
        raise InvalidInputError("No leads in campaign")
    settings = settings or get_settings()
    needs_ai = any(not (s.get("subject_template") or s.get("body_template")) for s in steps)
    if needs_ai and not settings.ai_api_key:
        raise ConfigMissingError("AI service not configured. Please configure OpenAI API key in Settings.")

    existing = set()
    if not overwrite:
        existing = {(m["lead_id"], m["step_id"]) for m in db.list_generated_messages(campaign_id)}

    counts = {"generated": 0, "skipped": 0, "failed": 0}
    total = len(campaign["lead_ids"]) * len(steps)
    for lead_id in campaign["lead_ids"]:
        lead = db.get_lead(lead_id)
        if not lead:
            logger.warning("Lead %s no longer exists; skipping", lead_id)
            counts["skipped"] += len(steps)
            continue
        for step in steps:
            if (lead_id, step["id"]) in existing:
                counts["skipped"] += 1
                continue
            check(cancel, "Message generation")
            try:
                message = _generate_one(lead, step, campaign, settings.business_profile, settings, llm_client)
                db.upsert_generated_message(campaign_id, lead_id, step["id"], message["subject"], message["body"])
                counts["generated"] += 1
            except IntelError as e:
                counts["failed"] += 1
                logger.warning("Message generation failed for lead %s step %s: %s",
                               lead_id[:8], step.get("step_order"), e)
            except Exception:
                counts["failed"] += 1
                logger.exception("Message generation crashed for lead %s step %s", lead_id[:8], step.get("step_order"))
            if progress:
                progress({"phase": "generating", "total": total, "completed": sum(counts.values()) - counts["failed"],
                          "failed": counts["failed"]})

    logger.info("Campaign %s messages: %s", campaign_id[:8], counts)
    return counts


# =============================================================================
# BULK ENRICHMENT + PREPARE
# =============================================================================

def enrich_lead(lead: Dict[str, Any], settings: Settings, session=None, llm_client=None) -> Dict[str, Any]:
    """Enrich one lead through Apollo and persist the merged fields."""
    fields = enrich_contact(lead, settings, session=session, llm_client=llm_client)
    return db.update_lead(lead["id"], fields)


def prepare_campaign(
    campaign_id: str,
    enrich: bool = True,
    generate: bool = True,
    progress: Optional[ProgressFn] = None,
    cancel: Optional[CancelToken] = None,
    delay: float = ENRICH_DELAY,
    settings: Optional[Settings] = None,
    session=None,
    llm_client=None,
) -> Dict[str, Any]:
    """
    Enrich the campaign's unenriched leads, then generate its messages.

    Progress is reported after every lead as {phase, total, completed, failed}.
    Cancellation is checked before each external request and surfaces as
    CancelledError with the last reported progress already delivered.
    """
    campaign = require_campaign(campaign_id)
    settings = settings or get_settings()
    report = progress or (lambda p: None)

    report({"phase": "checking", "total": len(campaign["lead_ids"]), "completed": 0, "failed": 0})
    leads = [db.get_lead(lead_id) for lead_id in campaign["lead_ids"]]
    pending = [l for l in leads if l and l.get("enrichment_status") != "complete"]

    enriched = failed = 0
    if enrich and pending:
        if not settings.enrichment_api_key:
            raise ConfigMissingError("Apollo API key not configured. Please configure it in Settings.")
        # completed counts leads that are enriched, including those that already were
        state = {"phase": "enriching", "total": len(campaign["lead_ids"]),
                 "completed": len(campaign["lead_ids"]) - len(pending), "failed": 0}
        already = state["completed"]
        report(dict(state))
        for i, lead in enumerate(pending):
            check(cancel, "Campaign enrichment")
            try:
                enrich_lead(lead, settings, session=session, llm_client=llm_client)
                enriched += 1
            except CancelledError:
                raise
            except IntelError as e:
                failed += 1
                logger.warning("Enrichment failed for lead %s: %s", lead["id"][:8], e)
            except Exception:
                failed += 1
                logger.exception("Enrichment crashed for lead %s", lead["id"][:8])
            state.update(completed=already + enriched, failed=failed)
            report(dict(state))
            if i < len(pending) - 1:
                pause(cancel, delay)

    messages = {"generated": 0, "skipped": 0, "failed": 0}
    if generate:
        report({"phase": "generating", "total": len(campaign["lead_ids"]) * len(campaign["steps"]),
                "completed": 0, "failed": 0})
        messages = generate_messages(campaign_id, settings=settings, llm_client=llm_client,
                                     cancel=cancel, progress=report)

    db.set_campaign_status(campaign_id, "preview")
    report({"phase": "preview", "total": len(campaign["lead_ids"]), "completed": len(campaign["lead_ids"]),
            "failed": failed})
    return {
        "campaign_id": campaign_id,
        "enriched": enriched,
        "enrichment_failed": failed,
        "messages": messages,
    }
