"""
LifePlan — Entry Point.

Single entry point: `python main.py <command>` runs one of the daily jobs.
"""

import logging
import sys

from lifeplan.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from lifeplan.cli import main

if __name__ == "__main__":
    sys.exit(main())
