#!/usr/bin/env python3
"""Convenience runner for the Strava run submission service.

Usage:
    python run.py [--host HOST] [--port PORT] [--workbook PATH]
"""
import logging
from strava_submissions.main import main

if __name__ == "__main__":
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    main()
