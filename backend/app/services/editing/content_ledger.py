"""
Content Version Ledger

Append-only record of saved page content. Every version written through the
ledger references the hypothesis that was active on the page when it was
saved.

INVARIANTS:
- Versions are never updated or deleted (only cascade-deleted with the page)
- version_number is 1-based and strictly increasing per page
- hypothesis_id resolves to a hypothesis that was active for the same page
  at saved_at
"""
import logging
from typing import Iterator, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.db_models import ContentVersionDB, HypothesisDB, HypothesisStatus, JourneyPageDB
from ..clock import utcnow
from ..errors import ConflictError, NotFoundError, PreconditionError

logger = logging.getLogger(__name__)

# Concurrent appends to the same page may pick the same version number
MAX_APPEND_ATTEMPTS = 3
HISTORY_BATCH_SIZE = 100


class VersionHistory:
    """
    Newest-first view of a page's versions.

    Each iteration issues a fresh query, so the sequence can be walked any
    number of times and always reflects what is stored at that moment.
    """

    def __init__(self, db: Session, page_id: int):
        self.db = db
        self.page_id = page_id

    def _query(self):
        return self.db.query(ContentVersionDB).filter(ContentVersionDB.page_id == self.page_id)

    def __iter__(self) -> Iterator[ContentVersionDB]:
        query = self._query().order_by(ContentVersionDB.version_number.desc())
        return iter(query.yield_per(HISTORY_BATCH_SIZE))

    def __len__(self) -> int:
        return self._query().count()


class ContentVersionLedger:
    """Appends and reads content versions for journey pages."""

    def __init__(self, db: Session):
        self.db = db

    def append_version(
        self,
        page_id: int,
        title: str,
        body: str,
        hypothesis_id: Optional[int],
        saved_by: Optional[str] = None,
    ) -> ContentVersionDB:
        """
        Append a new version for a page under an active hypothesis.

        Raises:
            NotFoundError: unknown page
            PreconditionError: hypothesis missing, unknown, on another page, or not active
            ConflictError: version number still colliding after retries
        """
        page = self.db.get(JourneyPageDB, page_id)
        if page is None:
            raise NotFoundError(f"Journey page not found: {page_id}")

        if hypothesis_id is None:
            raise PreconditionError("An active hypothesis is required before saving content")

        hypothesis = (
            self.db.query(HypothesisDB)
            .filter(HypothesisDB.id == hypothesis_id)
            .with_for_update()
            .first()
        )
        if hypothesis is None:
            raise PreconditionError(f"Hypothesis {hypothesis_id} does not exist")
        if hypothesis.page_id != page_id:
            raise PreconditionError(f"Hypothesis {hypothesis_id} belongs to another page")
        if hypothesis.status != HypothesisStatus.ACTIVE.value:
            raise PreconditionError(
                f"Hypothesis {hypothesis_id} is {hypothesis.status}; record a new hypothesis to keep editing"
            )

        title = title or ""
        body = body or ""

        version = None
        for attempt in range(1, MAX_APPEND_ATTEMPTS + 1):
            current_max = self._current_max(page_id)
            try:
                with self.db.begin_nested():
                    version = ContentVersionDB(
                        page_id=page_id,
                        version_number=current_max + 1,
                        title=title,
                        body=body,
                        hypothesis_id=hypothesis_id,
                        saved_by=saved_by,
                        saved_at=utcnow(),
                    )
                    self.db.add(version)
                    self.db.flush()
                break
            except IntegrityError:
                logger.warning(
                    f"Version number collision on page {page_id} (attempt {attempt}/{MAX_APPEND_ATTEMPTS})"
                )
                version = None
        if version is None:
            raise ConflictError(f"Could not append a version to page {page_id}; retry the save")

        # The page row shows the last saved content
        page.title = title
        page.body = body
        self.db.flush()

        logger.info(
            f"Appended version {version.version_number} to page {page_id} under hypothesis {hypothesis_id}"
        )
        return version

    def _current_max(self, page_id: int) -> int:
        return (
            self.db.query(func.max(ContentVersionDB.version_number))
            .filter(ContentVersionDB.page_id == page_id)
            .scalar()
        ) or 0

    def latest(self, page_id: int) -> Optional[ContentVersionDB]:
        return (
            self.db.query(ContentVersionDB)
            .filter(ContentVersionDB.page_id == page_id)
            .order_by(ContentVersionDB.version_number.desc())
            .first()
        )

    def history(self, page_id: int) -> VersionHistory:
        return VersionHistory(self.db, page_id)
