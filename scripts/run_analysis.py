#!/usr/bin/env python3
"""
Stage pipeline runner

Runs Geo Enrichment -> Property Analysis -> Service Mapping for leads in the
database, either one stage or the full analysis. Ctrl-C stops the batch;
stages already saved are kept.

Usage:
    python scripts/run_analysis.py LEAD_ID [LEAD_ID ...]
    python scripts/run_analysis.py --pending --limit 10
    python scripts/run_analysis.py LEAD_ID --stage geo

Environment Variables:
    GOOGLE_MAPS_API_KEY, OPENAI_API_KEY: required for all stages
    PERPLEXITY_API_KEY, GOOGLE_CUSTOM_SEARCH_ID: optional research sources
"""

import os
import sys
import argparse
import logging

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sales_intel.config import configure_logging, get_settings
from sales_intel.db import init_db, list_leads
from sales_intel.errors import IntelError
from sales_intel.stages import STAGES, run_full_analysis, run_stage

configure_logging()
logger = logging.getLogger(__name__)


def _pending_lead_ids(limit: int) -> list:
    return [
        lead["id"] for lead in list_leads()
        if not lead.get("service_mapping")
    ][:limit]


def main():
    parser = argparse.ArgumentParser(description="Run the per-lead stage pipeline")
    parser.add_argument("lead_ids", nargs="*")
    parser.add_argument("--pending", action="store_true", help="Analyze leads without a service mapping")
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument("--stage", choices=STAGES, help="Run a single stage instead of the full analysis")
    args = parser.parse_args()

    init_db()
    lead_ids = list(args.lead_ids)
    if args.pending:
        lead_ids += _pending_lead_ids(args.limit)
    if not lead_ids:
        parser.error("Provide lead ids or --pending")

    settings = get_settings()
    completed = failed = 0
    for lead_id in lead_ids:
        try:
            if args.stage:
                run_stage(lead_id, args.stage, settings=settings)
                ok = True
            else:
                result = run_full_analysis(lead_id, settings=settings)
                ok = result["completed"]
                for entry in result["stages"]:
                    logger.info("  %s: %s%s", entry["stage"], entry["outcome"],
                                f" ({entry['error']['message']})" if entry.get("error") else "")
        except IntelError as e:
            logger.error("Lead %s: %s", lead_id, e)
            ok = False
        except KeyboardInterrupt:
            logger.warning("Interrupted; stopping after %d completed, %d failed", completed, failed)
            break
        if ok:
            completed += 1
        else:
            failed += 1

    logger.info("Done: %d completed, %d failed", completed, failed)


if __name__ == "__main__":
    main()
