"""
SQLite persistence for the sales intelligence engine.

Stores leads (one JSON document per lead), activities, campaigns with their
steps, enrolled leads and generated messages, workspace settings, and
background jobs. Stage payloads go through save_stage_payload, which refuses
out-of-order writes.
"""

import os
import sqlite3
import json
import uuid
import logging
from typing import Dict, List, Optional, Any
from datetime import datetime, timezone

from .errors import InvalidInputError, NotFoundError, StageBlockedError

logger = logging.getLogger(__name__)

# Default path; override with SALES_INTEL_DB_PATH
DEFAULT_DB_DIR = "data"
DEFAULT_DB_NAME = "sales_intel.db"

ACTIVITY_TYPES = ("call", "email", "meeting", "note")
LEAD_STATUSES = ("new", "contacted", "qualified", "proposal", "won", "lost")
QUALIFICATION_LEVELS = ("cold", "warm", "hot")
MESSAGE_STATUSES = ("generated", "approved", "rejected", "edited")

# Payload key per stage and the payload each one requires first
STAGE_FIELDS = {
    "geo": "geo_enrichment",
    "property": "property_analysis",
    "service": "service_mapping",
}
STAGE_REQUIRES = {
    "geo": (),
    "property": ("geo_enrichment",),
    "service": ("geo_enrichment", "property_analysis"),
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_db_path() -> str:
    """Return path to SQLite DB file."""
    path = os.getenv("SALES_INTEL_DB_PATH")
    if path:
        return path
    os.makedirs(DEFAULT_DB_DIR, exist_ok=True)
    return os.path.join(DEFAULT_DB_DIR, DEFAULT_DB_NAME)


def _get_conn() -> sqlite3.Connection:
    """Get connection with row factory for dict-like rows."""
    conn = sqlite3.connect(get_db_path())
    conn.row_factory = sqlite3.Row
    return conn


def _loads(text: Optional[str], default: Any = None) -> Any:
    if not text:
        return default
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return default


def init_db() -> None:
    """Create tables if they do not exist."""
    conn = _get_conn()
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS leads (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS activities (
                id TEXT PRIMARY KEY,
                lead_id TEXT NOT NULL,
                activity_type TEXT NOT NULL,
                content TEXT NOT NULL,
                created_by TEXT NOT NULL,
                follow_up_date TEXT,
                follow_up_action TEXT,
                follow_up_completed INTEGER DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (lead_id) REFERENCES leads(id)
            );
            CREATE INDEX IF NOT EXISTS idx_activities_lead ON activities(lead_id, created_at);

            CREATE TABLE IF NOT EXISTS campaigns (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                goal TEXT,
                status TEXT NOT NULL DEFAULT 'draft',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS campaign_steps (
                id TEXT PRIMARY KEY,
                campaign_id TEXT NOT NULL,
                step_order INTEGER NOT NULL,
                delay_days INTEGER DEFAULT 0,
                subject_template TEXT,
                body_template TEXT,
                FOREIGN KEY (campaign_id) REFERENCES campaigns(id)
            );

            CREATE TABLE IF NOT EXISTS campaign_leads (
                campaign_id TEXT NOT NULL,
                lead_id TEXT NOT NULL,
                added_at TEXT NOT NULL,
                PRIMARY KEY (campaign_id, lead_id)
            );

            CREATE TABLE IF NOT EXISTS generated_messages (
                id TEXT PRIMARY KEY,
                campaign_id TEXT NOT NULL,
                lead_id TEXT NOT NULL,
                step_id TEXT NOT NULL,
                subject TEXT,
                body TEXT,
                status TEXT NOT NULL DEFAULT 'generated',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(campaign_id, lead_id, step_id)
            );

            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS jobs (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                input TEXT,
                progress TEXT,
                result TEXT,
                error TEXT,
                cancel_requested INTEGER DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                completed_at TEXT
            );
        """)
        conn.commit()
    finally:
        conn.close()


# =============================================================================
# LEADS
# =============================================================================

def create_lead(lead: Dict[str, Any]) -> Dict[str, Any]:
    """Insert a lead document; fills id, status, timestamps."""
    now = _now()
    doc = dict(lead)
    doc["id"] = str(doc.get("id") or uuid.uuid4())
    doc.setdefault("status", "new")
    doc.setdefault("enrichment_status", "discovered")
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    conn = _get_conn()
    try:
        conn.execute(
            "INSERT INTO leads (id, data, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (doc["id"], json.dumps(doc, default=str), doc["created_at"], now),
        )
        conn.commit()
    finally:
        conn.close()
    logger.info("Created lead %s (%s)", doc["id"][:8], doc.get("company_name") or "unnamed")
    return doc


def get_lead(lead_id: str) -> Optional[Dict[str, Any]]:
    conn = _get_conn()
    try:
        row = conn.execute("SELECT data FROM leads WHERE id = ?", (lead_id,)).fetchone()
    finally:
        conn.close()
    return _loads(row["data"]) if row else None


def require_lead(lead_id: str) -> Dict[str, Any]:
    lead = get_lead(lead_id)
    if lead is None:
        raise NotFoundError(f"Lead {lead_id} not found")
    return lead


def list_leads(limit: int = 500) -> List[Dict[str, Any]]:
    conn = _get_conn()
    try:
        rows = conn.execute(
            "SELECT data FROM leads ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
    finally:
        conn.close()
    return [_loads(r["data"], {}) for r in rows]


def delete_leads(lead_ids: List[str]) -> int:
    """Delete leads with their activities, campaign enrollments and messages. Returns leads removed."""
    conn = _get_conn()
    try:
        deleted = 0
        for lead_id in lead_ids:
            conn.execute("DELETE FROM activities WHERE lead_id = ?", (lead_id,))
            conn.execute("DELETE FROM campaign_leads WHERE lead_id = ?", (lead_id,))
            conn.execute("DELETE FROM generated_messages WHERE lead_id = ?", (lead_id,))
            deleted += conn.execute("DELETE FROM leads WHERE id = ?", (lead_id,)).rowcount
        conn.commit()
    finally:
        conn.close()
    logger.info("Deleted %d of %d leads", deleted, len(lead_ids))
    return deleted


def _write_lead(conn: sqlite3.Connection, doc: Dict[str, Any]) -> None:
    conn.execute(
        "UPDATE leads SET data = ?, updated_at = ? WHERE id = ?",
        (json.dumps(doc, default=str), doc["updated_at"], doc["id"]),
    )


def update_lead(lead_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Merge fields into a lead. Stage payload keys are rejected; use save_stage_payload."""
    stage_keys = set(STAGE_FIELDS.values()) & set(fields)
    if stage_keys:
        raise InvalidInputError(
            "Stage payloads must be written through their stage: " + ", ".join(sorted(stage_keys))
        )
    conn = _get_conn()
    try:
        row = conn.execute("SELECT data FROM leads WHERE id = ?", (lead_id,)).fetchone()
        if not row:
            raise NotFoundError(f"Lead {lead_id} not found")
        doc = _loads(row["data"], {})
        doc.update(fields)
        doc["updated_at"] = _now()
        _write_lead(conn, doc)
        conn.commit()
    finally:
        conn.close()
    return doc


def save_stage_payload(lead_id: str, stage: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Persist a stage payload after checking that every prerequisite payload exists."""
    if stage not in STAGE_FIELDS:
        raise InvalidInputError(f"Unknown stage: {stage}")
    conn = _get_conn()
    try:
        row = conn.execute("SELECT data FROM leads WHERE id = ?", (lead_id,)).fetchone()
        if not row:
            raise NotFoundError(f"Lead {lead_id} not found")
        doc = _loads(row["data"], {})
        missing = [key for key in STAGE_REQUIRES[stage] if not doc.get(key)]
        if missing:
            raise StageBlockedError(
                f"Cannot save {STAGE_FIELDS[stage]}: missing {', '.join(missing)}",
                detail={"stage": stage, "missing": missing},
            )
        doc[STAGE_FIELDS[stage]] = payload
        doc["updated_at"] = _now()
        _write_lead(conn, doc)
        conn.commit()
    finally:
        conn.close()
    logger.info("Saved %s payload for lead %s", stage, lead_id[:8])
    return doc


def set_stage_run(lead_id: str, stage: str, state: str, reason: Optional[str] = None) -> None:
    """Record the server-side run state of a stage (running / failed / complete)."""
    conn = _get_conn()
    try:
        row = conn.execute("SELECT data FROM leads WHERE id = ?", (lead_id,)).fetchone()
        if not row:
            raise NotFoundError(f"Lead {lead_id} not found")
        doc = _loads(row["data"], {})
        runs = doc.get("stage_runs") or {}
        runs[stage] = {"state": state, "reason": reason, "at": _now()}
        doc["stage_runs"] = runs
        _write_lead(conn, doc)
        conn.commit()
    finally:
        conn.close()


# =============================================================================
# ACTIVITIES
# =============================================================================

def _activity_row(row: sqlite3.Row) -> Dict[str, Any]:
    d = dict(row)
    d["follow_up_completed"] = bool(d.get("follow_up_completed"))
    return d


def create_activity(
    lead_id: str,
    activity_type: str,
    content: str,
    created_by: str,
    follow_up_date: Optional[str] = None,
    follow_up_action: Optional[str] = None,
    follow_up_completed: bool = False,
) -> Dict[str, Any]:
    if not activity_type or not content or not created_by:
        raise InvalidInputError("activity_type, content, and created_by are required")
    if activity_type not in ACTIVITY_TYPES:
        raise InvalidInputError(f"Invalid activity_type. Must be one of: {', '.join(ACTIVITY_TYPES)}")
    require_lead(lead_id)
    now = _now()
    activity_id = str(uuid.uuid4())
    conn = _get_conn()
    try:
        conn.execute(
            """INSERT INTO activities (id, lead_id, activity_type, content, created_by, follow_up_date,
                   follow_up_action, follow_up_completed, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (activity_id, lead_id, activity_type, content, created_by, follow_up_date,
             follow_up_action, 1 if follow_up_completed else 0, now, now),
        )
        conn.commit()
        row = conn.execute("SELECT * FROM activities WHERE id = ?", (activity_id,)).fetchone()
    finally:
        conn.close()
    return _activity_row(row)


def list_activities(lead_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Activities newest first; all leads when lead_id is None."""
    conn = _get_conn()
    try:
        if lead_id:
            rows = conn.execute(
                "SELECT * FROM activities WHERE lead_id = ? ORDER BY created_at DESC", (lead_id,)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM activities ORDER BY created_at DESC").fetchall()
    finally:
        conn.close()
    return [_activity_row(r) for r in rows]


def update_activity(lead_id: str, activity_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    allowed = ("activity_type", "content", "follow_up_date", "follow_up_action", "follow_up_completed")
    updates = {k: v for k, v in fields.items() if k in allowed and v is not None}
    if "activity_type" in updates and updates["activity_type"] not in ACTIVITY_TYPES:
        raise InvalidInputError(f"Invalid activity_type. Must be one of: {', '.join(ACTIVITY_TYPES)}")
    if "follow_up_completed" in updates:
        updates["follow_up_completed"] = 1 if updates["follow_up_completed"] else 0
    updates["updated_at"] = _now()
    assignments = ", ".join(f"{k} = ?" for k in updates)
    conn = _get_conn()
    try:
        cur = conn.execute(
            f"UPDATE activities SET {assignments} WHERE id = ? AND lead_id = ?",
            (*updates.values(), activity_id, lead_id),
        )
        conn.commit()
        if cur.rowcount == 0:
            raise NotFoundError(f"Activity {activity_id} not found")
        row = conn.execute("SELECT * FROM activities WHERE id = ?", (activity_id,)).fetchone()
    finally:
        conn.close()
    return _activity_row(row)


def delete_activity(lead_id: str, activity_id: str) -> None:
    conn = _get_conn()
    try:
        cur = conn.execute("DELETE FROM activities WHERE id = ? AND lead_id = ?", (activity_id, lead_id))
        conn.commit()
    finally:
        conn.close()
    if cur.rowcount == 0:
        raise NotFoundError(f"Activity {activity_id} not found")


# =============================================================================
# SETTINGS
# =============================================================================

def get_saved_settings() -> Dict[str, Any]:
    conn = _get_conn()
    try:
        rows = conn.execute("SELECT key, value FROM settings").fetchall()
    except sqlite3.OperationalError:
        # table not created yet
        return {}
    finally:
        conn.close()
    return {r["key"]: _loads(r["value"]) for r in rows}


def save_settings(values: Dict[str, Any]) -> None:
    now = _now()
    conn = _get_conn()
    try:
        for key, value in values.items():
            conn.execute(
                """INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
                (key, json.dumps(value), now),
            )
        conn.commit()
    finally:
        conn.close()


# =============================================================================
# CAMPAIGNS
# =============================================================================

def create_campaign(name: str, goal: Optional[str] = None) -> Dict[str, Any]:
    if not name:
        raise InvalidInputError("Campaign name is required")
    now = _now()
    campaign_id = str(uuid.uuid4())
    conn = _get_conn()
    try:
        conn.execute(
            "INSERT INTO campaigns (id, name, goal, status, created_at, updated_at) VALUES (?, ?, ?, 'draft', ?, ?)",
            (campaign_id, name, goal, now, now),
        )
        conn.commit()
    finally:
        conn.close()
    return get_campaign(campaign_id)


def get_campaign(campaign_id: str) -> Optional[Dict[str, Any]]:
    conn = _get_conn()
    try:
        row = conn.execute("SELECT * FROM campaigns WHERE id = ?", (campaign_id,)).fetchone()
        if not row:
            return None
        campaign = dict(row)
        campaign["steps"] = [
            dict(r) for r in conn.execute(
                "SELECT * FROM campaign_steps WHERE campaign_id = ? ORDER BY step_order", (campaign_id,)
            ).fetchall()
        ]
        campaign["lead_ids"] = [
            r["lead_id"] for r in conn.execute(
                "SELECT lead_id FROM campaign_leads WHERE campaign_id = ? ORDER BY added_at", (campaign_id,)
            ).fetchall()
        ]
    finally:
        conn.close()
    return campaign


def set_campaign_status(campaign_id: str, status: str) -> None:
    conn = _get_conn()
    try:
        conn.execute(
            "UPDATE campaigns SET status = ?, updated_at = ? WHERE id = ?", (status, _now(), campaign_id)
        )
        conn.commit()
    finally:
        conn.close()


def replace_campaign_steps(campaign_id: str, steps: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    conn = _get_conn()
    try:
        conn.execute("DELETE FROM campaign_steps WHERE campaign_id = ?", (campaign_id,))
        for i, step in enumerate(steps, start=1):
            conn.execute(
                """INSERT INTO campaign_steps (id, campaign_id, step_order, delay_days, subject_template, body_template)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    str(uuid.uuid4()),
                    campaign_id,
                    int(step.get("step_order") or i),
                    int(step.get("delay_days") or 0),
                    step.get("subject_template"),
                    step.get("body_template"),
                ),
            )
        conn.commit()
        rows = conn.execute(
            "SELECT * FROM campaign_steps WHERE campaign_id = ? ORDER BY step_order", (campaign_id,)
        ).fetchall()
    finally:
        conn.close()
    return [dict(r) for r in rows]


def add_campaign_leads(campaign_id: str, lead_ids: List[str]) -> int:
    now = _now()
    conn = _get_conn()
    try:
        added = 0
        for lead_id in lead_ids:
            cur = conn.execute(
                "INSERT OR IGNORE INTO campaign_leads (campaign_id, lead_id, added_at) VALUES (?, ?, ?)",
                (campaign_id, lead_id, now),
            )
            added += cur.rowcount
        conn.commit()
    finally:
        conn.close()
    return added


def upsert_generated_message(
    campaign_id: str, lead_id: str, step_id: str, subject: str, body: str
) -> Dict[str, Any]:
    now = _now()
    conn = _get_conn()
    try:
        conn.execute(
            """INSERT INTO generated_messages (id, campaign_id, lead_id, step_id, subject, body, status, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, 'generated', ?, ?)
               ON CONFLICT(campaign_id, lead_id, step_id) DO UPDATE SET
                   subject = excluded.subject, body = excluded.body, status = 'generated',
                   updated_at = excluded.updated_at""",
            (str(uuid.uuid4()), campaign_id, lead_id, step_id, subject, body, now, now),
        )
        conn.commit()
        row = conn.execute(
            "SELECT * FROM generated_messages WHERE campaign_id = ? AND lead_id = ? AND step_id = ?",
            (campaign_id, lead_id, step_id),
        ).fetchone()
    finally:
        conn.close()
    return dict(row)


def list_generated_messages(campaign_id: str) -> List[Dict[str, Any]]:
    conn = _get_conn()
    try:
        rows = conn.execute(
            """SELECT m.* FROM generated_messages m
               LEFT JOIN campaign_steps s ON s.id = m.step_id
               WHERE m.campaign_id = ? ORDER BY m.lead_id, s.step_order""",
            (campaign_id,),
        ).fetchall()
    finally:
        conn.close()
    return [dict(r) for r in rows]


def update_generated_message(message_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    updates = {k: v for k, v in fields.items() if k in ("subject", "body", "status") and v is not None}
    if "status" in updates and updates["status"] not in MESSAGE_STATUSES:
        raise InvalidInputError(f"Invalid status. Must be one of: {', '.join(MESSAGE_STATUSES)}")
    if ("subject" in updates or "body" in updates) and "status" not in updates:
        updates["status"] = "edited"
    updates["updated_at"] = _now()
    assignments = ", ".join(f"{k} = ?" for k in updates)
    conn = _get_conn()
    try:
        cur = conn.execute(
            f"UPDATE generated_messages SET {assignments} WHERE id = ?", (*updates.values(), message_id)
        )
        conn.commit()
        if cur.rowcount == 0:
            raise NotFoundError(f"Message {message_id} not found")
        row = conn.execute("SELECT * FROM generated_messages WHERE id = ?", (message_id,)).fetchone()
    finally:
        conn.close()
    return dict(row)


# =============================================================================
# JOBS
# =============================================================================

def _job_row(row: sqlite3.Row) -> Dict[str, Any]:
    d = dict(row)
    d["input"] = _loads(d.get("input"), {})
    d["progress"] = _loads(d.get("progress"), {})
    d["result"] = _loads(d.get("result"))
    d["cancel_requested"] = bool(d.get("cancel_requested"))
    return d


def create_job(job_type: str, inp: Dict[str, Any]) -> str:
    job_id = str(uuid.uuid4())
    now = _now()
    conn = _get_conn()
    try:
        conn.execute(
            "INSERT INTO jobs (id, type, status, input, created_at, updated_at) VALUES (?, ?, 'pending', ?, ?, ?)",
            (job_id, job_type, json.dumps(inp), now, now),
        )
        conn.commit()
    finally:
        conn.close()
    logger.info("Queued %s job %s", job_type, job_id[:8])
    return job_id


def get_job(job_id: str) -> Optional[Dict[str, Any]]:
    conn = _get_conn()
    try:
        row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
    finally:
        conn.close()
    return _job_row(row) if row else None


def get_pending_jobs(limit: int = 1) -> List[Dict[str, Any]]:
    conn = _get_conn()
    try:
        rows = conn.execute(
            "SELECT * FROM jobs WHERE status = 'pending' ORDER BY created_at LIMIT ?", (limit,)
        ).fetchall()
    finally:
        conn.close()
    return [_job_row(r) for r in rows]


def update_job_status(
    job_id: str,
    status: str,
    result: Optional[Dict] = None,
    error: Optional[str] = None,
    progress: Optional[Dict] = None,
) -> None:
    now = _now()
    completed_at = now if status in ("completed", "failed", "cancelled") else None
    conn = _get_conn()
    try:
        conn.execute(
            """UPDATE jobs SET status = ?, result = COALESCE(?, result), error = COALESCE(?, error),
                   progress = COALESCE(?, progress), updated_at = ?, completed_at = COALESCE(?, completed_at)
               WHERE id = ?""",
            (
                status,
                json.dumps(result, default=str) if result is not None else None,
                error,
                json.dumps(progress) if progress is not None else None,
                now,
                completed_at,
                job_id,
            ),
        )
        conn.commit()
    finally:
        conn.close()


def update_job_progress(job_id: str, progress: Dict[str, Any]) -> None:
    conn = _get_conn()
    try:
        conn.execute(
            "UPDATE jobs SET progress = ?, updated_at = ? WHERE id = ?",
            (json.dumps(progress), _now(), job_id),
        )
        conn.commit()
    finally:
        conn.close()


def request_job_cancel(job_id: str) -> bool:
    """Flag a job for cancellation. Pending jobs are cancelled immediately."""
    conn = _get_conn()
    try:
        row = conn.execute("SELECT status FROM jobs WHERE id = ?", (job_id,)).fetchone()
        if not row:
            return False
        if row["status"] == "pending":
            now = _now()
            conn.execute(
                "UPDATE jobs SET status = 'cancelled', cancel_requested = 1, updated_at = ?, completed_at = ? WHERE id = ?",
                (now, now, job_id),
            )
        elif row["status"] == "running":
            conn.execute("UPDATE jobs SET cancel_requested = 1, updated_at = ? WHERE id = ?", (_now(), job_id))
        conn.commit()
    finally:
        conn.close()
    return True
