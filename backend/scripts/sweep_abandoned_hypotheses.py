#!/usr/bin/env python3
"""
Abandoned Hypothesis Sweep
Cancels active hypotheses that never received a content version, e.g. when
an editing session died between hypothesis capture and the first save.

Usage:
    python -m scripts.sweep_abandoned_hypotheses [minutes]

Example:
    python -m scripts.sweep_abandoned_hypotheses 120
"""
import logging
import sys
import os
from datetime import timedelta

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from app.config import ABANDONED_HYPOTHESIS_MINUTES
from app.database import SessionLocal, init_db
from app.logging_setup import setup_logging
from app.services.clock import utcnow
from app.services.editing import HypothesisStore

logger = logging.getLogger("scripts.sweep_abandoned_hypotheses")


def sweep(minutes: int) -> int:
    """Cancel unused active hypotheses older than `minutes`. Returns the count."""
    init_db()

    db: Session = SessionLocal()
    try:
        cutoff = utcnow() - timedelta(minutes=minutes)
        count = HypothesisStore(db).sweep_abandoned(cutoff)
        db.commit()
        logger.info(f"Cancelled {count} abandoned hypotheses older than {minutes} minutes")
        return count
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main():
    setup_logging()

    if len(sys.argv) > 2:
        print(__doc__)
        sys.exit(1)

    minutes = ABANDONED_HYPOTHESIS_MINUTES
    if len(sys.argv) == 2:
        try:
            minutes = int(sys.argv[1])
        except ValueError:
            print("Error: minutes must be an integer.")
            sys.exit(1)

    if minutes <= 0:
        print("Error: minutes must be positive.")
        sys.exit(1)

    count = sweep(minutes)
    print(f"Swept {count} abandoned hypotheses.")


if __name__ == "__main__":
    main()
