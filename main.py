#!/usr/bin/env python3
"""
Sales Intelligence Engine - Main Entry Point

Convenience wrapper around the stage pipeline runner.
For the HTTP API run: uvicorn backend.main:app --reload

Usage:
    python main.py LEAD_ID [LEAD_ID ...]
    python main.py --pending

Environment Variables:
    GOOGLE_MAPS_API_KEY, OPENAI_API_KEY: Required for the stages.
"""

from scripts.run_analysis import main

if __name__ == "__main__":
    main()
