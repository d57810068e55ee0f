#!/usr/bin/env python3
"""
Opportunity scoring

Scores leads from the database (or a JSON export) and writes a ranked file.

Usage:
    python scripts/score_leads.py
    python scripts/score_leads.py --input output/leads.json --seed 42 --jitter
"""

import os
import sys
import json
import argparse
import logging
from datetime import datetime, timezone

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sales_intel.config import configure_logging
from sales_intel.db import init_db, list_activities, list_leads
from sales_intel.noise import noise_from_settings
from sales_intel.score import get_scoring_summary, score_leads

configure_logging()
logger = logging.getLogger(__name__)


def load_leads(filepath: str) -> tuple:
    """Load leads (and optional activities) from a JSON file."""
    with open(filepath, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if isinstance(data, dict):
        return data.get("leads", []), data.get("activities", [])
    return data, []


def save_scored_leads(scored: list, output_dir: str = "output") -> str:
    os.makedirs(output_dir, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = os.path.join(output_dir, f"scored_leads_{timestamp}.json")

    output_data = {
        "metadata": {
            "scored_at": datetime.now(timezone.utc).isoformat(),
            "total_leads": len(scored),
            "summary": get_scoring_summary(scored),
        },
        "leads": [s.to_dict() for s in scored],
    }

    with open(filepath, 'w', encoding='utf-8') as f:
        json.dump(output_data, f, indent=2, ensure_ascii=False, default=str)

    logger.info("Saved scored leads to: %s", filepath)
    return filepath


def main():
    parser = argparse.ArgumentParser(description="Score leads and rank opportunities")
    parser.add_argument("--input", help="JSON file of leads (default: read the database)")
    parser.add_argument("--output-dir", default="output")
    parser.add_argument("--jitter", action="store_true", help="Apply demo-style random jitter")
    parser.add_argument("--seed", type=int, default=None, help="Seed for --jitter")
    parser.add_argument("--top", type=int, default=5)
    args = parser.parse_args()

    if args.input:
        leads, activities = load_leads(args.input)
        logger.info("Loaded %d leads from %s", len(leads), args.input)
    else:
        init_db()
        leads, activities = list_leads(), list_activities()
        logger.info("Loaded %d leads from the database", len(leads))

    scored = score_leads(leads, activities, noise=noise_from_settings(args.jitter, args.seed))
    scored.sort(key=lambda s: s.opportunity_score, reverse=True)
    summary = get_scoring_summary(scored)

    logger.info("=" * 60)
    logger.info("OPPORTUNITY SCORING SUMMARY")
    logger.info("=" * 60)
    logger.info("Leads: %s | Avg: %s | Range: %s - %s",
                summary["total_leads"], summary["avg_score"], summary["min_score"], summary["max_score"])
    logger.info("Pipeline value: $%s (weighted $%s)",
                f"{summary['pipeline_value']:,}", f"{summary['weighted_pipeline_value']:,}")

    for i, s in enumerate(scored[:args.top], 1):
        logger.info("%d. %s | score %s | win %s%% | $%s",
                    i, s.lead.get("company_name", "Unknown"), s.opportunity_score,
                    s.win_probability, f"{s.estimated_value:,}")

    save_scored_leads(scored, args.output_dir)


if __name__ == "__main__":
    main()
