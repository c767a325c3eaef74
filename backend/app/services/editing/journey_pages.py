"""
Journey Page Service

Creates and advances the four-page journey of a client and answers
"when did this journey start" for the correlation engine.

Invariants:
- page_order is contiguous from 1 and strictly increasing per client
- at most one page is active; exactly one unless the journey is complete
- hypotheses and content versions are deleted with their page
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ...models.db_models import ClientDB, JourneyPageDB, PageStatus, PageType
from ...models.journey import JourneyProgress
from ..clock import utcnow
from ..errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


# =============================================================================
# DEFAULT PAGE TEMPLATES
# =============================================================================

PAGE_TEMPLATES = [
    {
        "page_type": PageType.ACTIVATION,
        "page_order": 1,
        "title": "Activate Your Placement",
        "body": "Welcome. Review what we have lined up for you and activate your search.",
    },
    {
        "page_type": PageType.AGREEMENT,
        "page_order": 2,
        "title": "Service Agreement",
        "body": "Review and accept the terms of our placement service.",
    },
    {
        "page_type": PageType.CONFIRMATION,
        "page_order": 3,
        "title": "Confirm Your Details",
        "body": "Confirm your details and choose a payment option.",
    },
    {
        "page_type": PageType.PROCESSING,
        "page_order": 4,
        "title": "Processing",
        "body": "Your payment is being processed. We will be in touch shortly.",
    },
]

CLOSED_STATUSES = {PageStatus.COMPLETED.value, PageStatus.SKIPPED.value}


class JourneyService:
    """Journey page lifecycle for one database session."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get_client(self, client_id: int) -> ClientDB:
        client = self.db.get(ClientDB, client_id)
        if client is None:
            raise NotFoundError(f"Client not found: {client_id}")
        return client

    def get_page(self, page_id: int) -> JourneyPageDB:
        page = self.db.get(JourneyPageDB, page_id)
        if page is None:
            raise NotFoundError(f"Journey page not found: {page_id}")
        return page

    def get_pages(self, client_id: int) -> List[JourneyPageDB]:
        """All pages for a client, ordered by page_order."""
        self.get_client(client_id)
        return (
            self.db.query(JourneyPageDB)
            .filter(JourneyPageDB.client_id == client_id)
            .order_by(JourneyPageDB.page_order.asc())
            .all()
        )

    def journey_start(self, client_id: int) -> Optional[datetime]:
        client = self.db.get(ClientDB, client_id)
        if client is None:
            return None
        return client.journey_started_at

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def create_journey(self, client_id: int) -> List[JourneyPageDB]:
        """
        Create the default four pages for a client.

        Page 1 starts active and stamps the journey start time if the client
        does not have one yet.
        """
        client = self.get_client(client_id)

        existing = (
            self.db.query(JourneyPageDB.id)
            .filter(JourneyPageDB.client_id == client_id)
            .first()
        )
        if existing:
            raise ConflictError(f"Journey pages already exist for client {client_id}")

        now = utcnow()
        pages = []
        for template in PAGE_TEMPLATES:
            is_first = template["page_order"] == 1
            page = JourneyPageDB(
                client_id=client_id,
                page_type=template["page_type"].value,
                page_order=template["page_order"],
                title=template["title"],
                body=template["body"],
                status=PageStatus.ACTIVE.value if is_first else PageStatus.PENDING.value,
                activated_at=now if is_first else None,
                created_at=now,
            )
            self.db.add(page)
            pages.append(page)

        if client.journey_started_at is None:
            client.journey_started_at = now

        self.db.flush()
        logger.info(f"Created {len(pages)} journey pages for client {client_id}")
        return pages

    def advance(self, client_id: int, skip: bool = False) -> Optional[JourneyPageDB]:
        """
        Close the active page (completed, or skipped) and activate the next
        pending page. Returns the newly active page, or None when the journey
        is complete.
        """
        pages = self.get_pages(client_id)
        if not pages:
            raise NotFoundError(f"No journey pages for client {client_id}")

        now = utcnow()
        active = next((p for p in pages if p.status == PageStatus.ACTIVE.value), None)
        if active is not None:
            active.status = PageStatus.SKIPPED.value if skip else PageStatus.COMPLETED.value
            active.completed_at = now

        next_page = next((p for p in pages if p.status == PageStatus.PENDING.value), None)
        if next_page is not None:
            next_page.status = PageStatus.ACTIVE.value
            next_page.activated_at = now
            client = self.get_client(client_id)
            if client.journey_started_at is None:
                client.journey_started_at = now

        self.db.flush()
        if next_page is None:
            logger.info(f"Journey complete for client {client_id}")
        else:
            logger.info(f"Client {client_id} advanced to page {next_page.page_order} ({next_page.page_type})")
        return next_page

    def progress(self, client_id: int) -> JourneyProgress:
        pages = self.get_pages(client_id)
        total = len(pages)
        closed = [p for p in pages if p.status in CLOSED_STATUSES]
        completed = len([p for p in pages if p.status == PageStatus.COMPLETED.value])
        active = next((p for p in pages if p.status == PageStatus.ACTIVE.value), None)

        if active is not None:
            current_step = active.page_order
        else:
            pending = next((p for p in pages if p.status == PageStatus.PENDING.value), None)
            current_step = pending.page_order if pending else total

        return JourneyProgress(
            total_pages=total,
            completed_pages=completed,
            active_page_id=active.id if active else None,
            progress_percentage=round(len(closed) / total * 100) if total else 0,
            current_step=current_step,
            is_complete=total > 0 and len(closed) == total,
        )

    def delete_page(self, page_id: int) -> None:
        """Delete a page together with its hypotheses and content versions."""
        page = self.get_page(page_id)
        client_id = page.client_id
        was_active = page.status == PageStatus.ACTIVE.value
        self.db.delete(page)
        self.db.flush()

        # Close the gap so page_order stays contiguous; one flush per row keeps
        # the (client_id, page_order) constraint satisfied at every step
        remaining = self.get_pages(client_id)
        for expected_order, remaining_page in enumerate(remaining, start=1):
            if remaining_page.page_order != expected_order:
                remaining_page.page_order = expected_order
                self.db.flush()

        if was_active:
            next_page = next((p for p in remaining if p.status == PageStatus.PENDING.value), None)
            if next_page is not None:
                next_page.status = PageStatus.ACTIVE.value
                next_page.activated_at = utcnow()
                self.db.flush()

        logger.info(f"Deleted journey page {page_id} and its editing history")
