"""
Stage orchestration: Geo Enrichment -> Property Analysis -> Service Mapping.

Stage state is derived from the persisted lead, never stored as a flag the
client owns:

    Complete        payload present
    Blocked(reason) prerequisite payload missing (wins over Running)
    Running         a run is recorded as in progress and not stale
    Failed(reason)  the last run failed
    Pending         otherwise

legacy_view() projects this onto the pending / disabled / loading / complete
shape plus can_run that the lead screen consumes.

run_stage() validates prerequisites before any external call and persists
through db.save_stage_payload. run_full_analysis() runs the three stages in
order, checks the cancel token before each one, and stops at the first
failure without touching earlier payloads.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from . import db
from .cancel import CancelToken
from .config import Settings, get_settings
from .errors import CancelledError, IntelError, InvalidInputError, StageBlockedError, UpstreamError
from .geo_enrichment import run_geo_enrichment
from .property_analysis import run_property_analysis
from .service_mapping import run_service_mapping

logger = logging.getLogger(__name__)

STAGES = ("geo", "property", "service")
STAGE_LABELS = {
    "geo": "Geo Enrichment",
    "property": "Property Analysis",
    "service": "Service Mapping",
}
BLOCKED_REASONS = {
    "property": "Geo enrichment required. Run Stage 1 first.",
    "service": "Property analysis required. Run Stage 2 first.",
}
# A run marked running longer than this is treated as abandoned
STALE_RUNNING_SECONDS = 15 * 60


class StageStatus(str, Enum):
    PENDING = "pending"
    BLOCKED = "blocked"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class StageState:
    status: StageStatus
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "reason": self.reason}


# =============================================================================
# STATE DERIVATION
# =============================================================================

def has_address(lead: Dict[str, Any]) -> bool:
    return bool(lead.get("company_street") or lead.get("company_city"))


def _prereq_reason(lead: Dict[str, Any], stage: str) -> Optional[str]:
    if stage == "property" and not lead.get("geo_enrichment"):
        return BLOCKED_REASONS["property"]
    if stage == "service":
        if not lead.get("geo_enrichment"):
            return BLOCKED_REASONS["property"]
        if not lead.get("property_analysis"):
            return BLOCKED_REASONS["service"]
    return None


def _is_fresh(at: Optional[str], now: datetime) -> bool:
    if not at:
        return False
    try:
        ts = datetime.fromisoformat(str(at).replace("Z", "+00:00"))
    except ValueError:
        return False
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (now - ts).total_seconds() <= STALE_RUNNING_SECONDS


def stage_state(lead: Dict[str, Any], stage: str, now: Optional[datetime] = None) -> StageState:
    if stage not in STAGES:
        raise InvalidInputError(f"Unknown stage: {stage}")
    now = now or datetime.now(timezone.utc)
    if lead.get(db.STAGE_FIELDS[stage]):
        return StageState(StageStatus.COMPLETE)
    reason = _prereq_reason(lead, stage)
    if reason:
        return StageState(StageStatus.BLOCKED, reason)
    run = (lead.get("stage_runs") or {}).get(stage) or {}
    if run.get("state") == "running" and _is_fresh(run.get("at"), now):
        return StageState(StageStatus.RUNNING)
    if run.get("state") == "failed":
        return StageState(StageStatus.FAILED, run.get("reason"))
    return StageState(StageStatus.PENDING)


def derive_stage_states(lead: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, StageState]:
    return {stage: stage_state(lead, stage, now) for stage in STAGES}


def can_run(lead: Dict[str, Any], stage: str) -> bool:
    if stage == "geo":
        return has_address(lead)
    if stage == "property":
        return bool(lead.get("geo_enrichment"))
    if stage == "service":
        return bool(lead.get("property_analysis"))
    return False


def legacy_view(lead: Dict[str, Any], running: Optional[set] = None,
                now: Optional[datetime] = None) -> Dict[str, Dict[str, Any]]:
    """
    pending / disabled / loading / complete plus can_run for each stage.

    Property is disabled whenever geo is absent and service whenever property
    is absent, even while a run is in flight.
    """
    running = set(running or ())
    view = {}
    for stage, state in derive_stage_states(lead, now).items():
        if state.status == StageStatus.BLOCKED:
            status = "disabled"
        elif stage in running or state.status == StageStatus.RUNNING:
            status = "loading"
        elif state.status == StageStatus.COMPLETE:
            status = "complete"
        else:
            status = "pending"
        view[stage] = {
            "status": status,
            "can_run": can_run(lead, stage),
            "state": state.status.value,
            "reason": state.reason,
            "label": STAGE_LABELS[stage],
        }
    return view


# =============================================================================
# EXECUTION
# =============================================================================

def _execute(stage: str, lead: Dict[str, Any], settings: Settings, cancel: Optional[CancelToken],
             clients: Dict[str, Any]) -> Dict[str, Any]:
    places = clients.get("places")
    llm_client = clients.get("llm_client")
    if stage == "geo":
        return run_geo_enrichment(lead, settings, places=places, llm_client=llm_client)
    if stage == "property":
        return run_property_analysis(
            lead, settings, places=places, llm_client=llm_client,
            http_session=clients.get("http_session"), cancel=cancel,
        )
    return run_service_mapping(lead, settings, places=places, llm_client=llm_client)


def run_stage(
    lead_id: str,
    stage: str,
    settings: Optional[Settings] = None,
    cancel: Optional[CancelToken] = None,
    **clients: Any,
) -> Dict[str, Any]:
    """
    Run one stage for a lead and persist its payload.

    Returns:
        the stage payload

    Raises:
        NotFoundError, StageBlockedError (before any external call),
        CancelledError, or the stage's own IntelError
    """
    if stage not in STAGES:
        raise InvalidInputError(f"Unknown stage: {stage}")
    lead = db.require_lead(lead_id)
    reason = _prereq_reason(lead, stage)
    if reason:
        raise StageBlockedError(reason, detail={"stage": stage})
    if stage == "geo" and not has_address(lead):
        raise InvalidInputError("No address data available for this lead")
    if cancel is not None:
        cancel.raise_if_cancelled(STAGE_LABELS[stage])

    settings = settings or get_settings()
    db.set_stage_run(lead_id, stage, "running")
    logger.info("Running %s for lead %s", STAGE_LABELS[stage], lead_id[:8])
    try:
        payload = _execute(stage, lead, settings, cancel, clients)
        db.save_stage_payload(lead_id, stage, payload)
    except IntelError as e:
        db.set_stage_run(lead_id, stage, "failed", reason=e.message)
        logger.warning("%s failed for lead %s: %s", STAGE_LABELS[stage], lead_id[:8], e)
        raise
    except Exception as e:
        db.set_stage_run(lead_id, stage, "failed", reason=str(e))
        logger.exception("%s crashed for lead %s", STAGE_LABELS[stage], lead_id[:8])
        raise
    db.set_stage_run(lead_id, stage, "complete")
    return payload


def run_full_analysis(
    lead_id: str,
    settings: Optional[Settings] = None,
    cancel: Optional[CancelToken] = None,
    **clients: Any,
) -> Dict[str, Any]:
    """
    Run geo, property and service in order; stop at the first failure.

    Returns:
        {"lead_id", "completed": bool, "stages": [{"stage", "outcome", "error"}], "error"}
        where outcome is completed / failed / cancelled / not_attempted.
    """
    settings = settings or get_settings()
    outcomes: List[Dict[str, Any]] = [
        {"stage": s, "outcome": "not_attempted", "error": None} for s in STAGES
    ]
    error: Optional[Dict[str, Any]] = None
    for entry in outcomes:
        stage = entry["stage"]
        if cancel is not None and cancel.cancelled:
            entry["outcome"] = "cancelled"
            error = CancelledError("Full analysis cancelled").to_dict()
            break
        try:
            run_stage(lead_id, stage, settings=settings, cancel=cancel, **clients)
            entry["outcome"] = "completed"
        except CancelledError as e:
            entry["outcome"] = "cancelled"
            entry["error"] = e.to_dict()
            error = entry["error"]
            break
        except IntelError as e:
            entry["outcome"] = "failed"
            entry["error"] = e.to_dict()
            error = entry["error"]
            break
        except Exception as e:
            entry["outcome"] = "failed"
            entry["error"] = UpstreamError(f"{STAGE_LABELS[stage]} failed: {e}").to_dict()
            error = entry["error"]
            break

    completed = all(e["outcome"] == "completed" for e in outcomes)
    logger.info("Full analysis for lead %s: %s", lead_id[:8],
                ", ".join(f"{e['stage']}={e['outcome']}" for e in outcomes))
    return {"lead_id": lead_id, "completed": completed, "stages": outcomes, "error": error}
