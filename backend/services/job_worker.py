"""
Background job worker running in a daemon thread.

Polls for pending jobs and executes them sequentially. Each running job gets
a CancelToken; a watcher thread flips it when POST /jobs/{id}/cancel sets the
job's cancel_requested flag.
"""

import logging
import threading
import traceback

from sales_intel.campaigns import prepare_campaign
from sales_intel.cancel import CancelToken
from sales_intel.config import get_settings
from sales_intel.db import (
    get_job,
    get_pending_jobs,
    update_job_progress,
    update_job_status,
)
from sales_intel.errors import CancelledError, IntelError
from sales_intel.stages import run_full_analysis

logger = logging.getLogger(__name__)

_worker_thread: threading.Thread | None = None
_stop_event = threading.Event()

POLL_INTERVAL = 2  # seconds
CANCEL_POLL_INTERVAL = 0.5


def _watch_cancel(job_id: str, token: CancelToken, done: threading.Event) -> None:
    while not done.wait(timeout=CANCEL_POLL_INTERVAL):
        job = get_job(job_id)
        if job and job.get("cancel_requested"):
            logger.info("Cancel requested for job %s", job_id[:8])
            token.cancel()
            return


def _run_campaign_prepare(job: dict, token: CancelToken) -> dict:
    inp = job.get("input", {}) or {}
    return prepare_campaign(
        inp["campaign_id"],
        enrich=bool(inp.get("enrich", True)),
        generate=bool(inp.get("generate", True)),
        progress=lambda p: update_job_progress(job["id"], p),
        cancel=token,
        settings=get_settings(),
    )


def _run_full_analysis(job: dict, token: CancelToken) -> dict:
    inp = job.get("input", {}) or {}
    result = run_full_analysis(inp["lead_id"], settings=get_settings(), cancel=token)
    if result.get("error") and result["error"].get("kind") == "cancelled":
        raise CancelledError("Full analysis cancelled")
    return result


JOB_HANDLERS = {
    "campaign_prepare": _run_campaign_prepare,
    "full_analysis": _run_full_analysis,
}


def _process_job(job: dict) -> None:
    job_id = job["id"]
    job_type = job.get("type", "")

    logger.info("Processing %s job %s", job_type, job_id[:8])
    handler = JOB_HANDLERS.get(job_type)
    if handler is None:
        update_job_status(job_id, "failed", error=f"Unknown job type: {job_type}")
        return

    update_job_status(job_id, "running")
    token = CancelToken()
    done = threading.Event()
    watcher = threading.Thread(target=_watch_cancel, args=(job_id, token, done), daemon=True)
    watcher.start()
    try:
        result = handler(job, token)
        update_job_status(job_id, "completed", result=result)
        logger.info("Job %s completed", job_id[:8])
    except CancelledError as exc:
        update_job_status(job_id, "cancelled", error=exc.message)
        logger.info("Job %s cancelled", job_id[:8])
    except IntelError as exc:
        logger.warning("Job %s failed: %s", job_id[:8], exc)
        update_job_status(job_id, "failed", error=exc.message, result={"error": exc.to_dict()})
    except Exception as exc:
        tb = traceback.format_exc()
        logger.error("Job %s failed: %s\n%s", job_id, exc, tb)
        update_job_status(job_id, "failed", error=str(exc))
    finally:
        done.set()


def _worker_loop() -> None:
    logger.info("Job worker started")
    while not _stop_event.is_set():
        try:
            jobs = get_pending_jobs(limit=1)
            if jobs:
                _process_job(jobs[0])
            else:
                _stop_event.wait(timeout=POLL_INTERVAL)
        except Exception:
            logger.exception("Worker loop error")
            _stop_event.wait(timeout=POLL_INTERVAL)
    logger.info("Job worker stopped")


def start_worker() -> None:
    global _worker_thread
    if _worker_thread and _worker_thread.is_alive():
        return
    _stop_event.clear()
    _worker_thread = threading.Thread(target=_worker_loop, daemon=True, name="job-worker")
    _worker_thread.start()


def stop_worker() -> None:
    _stop_event.set()
    if _worker_thread:
        _worker_thread.join(timeout=5)
