#!/usr/bin/env python3
"""
Demo Journey Seed Script
Creates a client with the default four-page journey, for local development.

Usage:
    python -m scripts.seed_demo_journey <client name>

Example:
    python -m scripts.seed_demo_journey "Acme Recruiting"
"""
import sys
import os

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from app.database import SessionLocal, init_db
from app.models.db_models import ClientDB
from app.services.editing import JourneyService
from app.services.errors import RevenueEngineError


def create_demo_journey(name: str) -> bool:
    """Create a client and its journey pages."""
    # Ensure tables exist
    init_db()

    db: Session = SessionLocal()
    try:
        client = ClientDB(name=name)
        db.add(client)
        db.flush()

        pages = JourneyService(db).create_journey(client.id)
        db.commit()

        print("Demo journey created successfully!")
        print(f"  Client: {client.name} (id={client.id})")
        for page in pages:
            print(f"  Page {page.page_order}: {page.page_type} [{page.status}] id={page.id}")
        return True

    except RevenueEngineError as e:
        print(f"Error creating demo journey: {e.message}")
        db.rollback()
        return False
    finally:
        db.close()


def main():
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(1)

    name = sys.argv[1].strip()
    if not name:
        print("Error: Client name must not be blank.")
        sys.exit(1)

    success = create_demo_journey(name)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
