"""
Migration: Add hypothesis-gated editing and payment correlation tables.

PostgreSQL only (SERIAL, JSONB, partial indexes, information_schema).
SQLite databases are created from the models by init_db() at startup.

Creates 7 tables:
1. clients - journey start time per client
2. journey_pages - four editable steps per client
3. hypotheses - one active per page (partial unique index)
4. content_versions - append-only saved content
5. correlations - one per payment event
6. correlation_audit - append-only override history
7. outcomes - one current outcome per client

Core principle: versions and audit rows are appended, never edited.
"""
import os
import sys

from sqlalchemy import create_engine, text

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import DATABASE_URL


def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists in the database."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = :table_name
        )
    """), {"table_name": table_name})
    return result.fetchone()[0]


def run_migration(database_url: str = DATABASE_URL) -> bool:
    """Create all revenue engine tables. Returns False when the URL is not PostgreSQL."""
    if not database_url.startswith("postgresql"):
        print(f"Skipping migration: {database_url.split(':', 1)[0]} is not PostgreSQL; init_db() creates the schema")
        return False

    engine = create_engine(database_url)

    with engine.connect() as conn:
        # =================================================================
        # TABLE 1: clients
        # =================================================================
        if table_exists(conn, "clients"):
            print("clients table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE clients (
                    id SERIAL PRIMARY KEY,
                    name VARCHAR(255) NOT NULL,
                    journey_started_at TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            print("Created clients table")

        # =================================================================
        # TABLE 2: journey_pages
        # =================================================================
        if table_exists(conn, "journey_pages"):
            print("journey_pages table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE journey_pages (
                    id SERIAL PRIMARY KEY,
                    client_id INTEGER NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
                    page_type VARCHAR(20) NOT NULL,
                    page_order INTEGER NOT NULL,
                    status VARCHAR(20) NOT NULL DEFAULT 'pending',
                    title VARCHAR(500) NOT NULL DEFAULT '',
                    body TEXT NOT NULL DEFAULT '',
                    activated_at TIMESTAMP,
                    completed_at TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_journey_pages_client_order UNIQUE (client_id, page_order)
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_journey_pages_client ON journey_pages(client_id)
            """))
            print("Created journey_pages table")

        # =================================================================
        # TABLE 3: hypotheses
        # =================================================================
        if table_exists(conn, "hypotheses"):
            print("hypotheses table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE hypotheses (
                    id SERIAL PRIMARY KEY,
                    page_id INTEGER NOT NULL REFERENCES journey_pages(id) ON DELETE CASCADE,
                    statement TEXT NOT NULL,
                    change_type VARCHAR(20) NOT NULL,
                    confidence_level INTEGER NOT NULL,
                    predicted_outcome TEXT,
                    actual_outcome TEXT,
                    status VARCHAR(20) NOT NULL DEFAULT 'active',
                    created_by VARCHAR(100),
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    completed_at TIMESTAMP,
                    outcome_recorded_at TIMESTAMP,
                    cancelled_at TIMESTAMP,
                    cancellation_reason VARCHAR(255),
                    superseded_by_id INTEGER,
                    CONSTRAINT ck_hypotheses_confidence_range CHECK (confidence_level BETWEEN 1 AND 10)
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_hypotheses_page ON hypotheses(page_id)
            """))
            conn.execute(text("""
                CREATE UNIQUE INDEX uq_hypotheses_one_active_per_page
                ON hypotheses(page_id) WHERE status = 'active'
            """))
            print("Created hypotheses table")

        # =================================================================
        # TABLE 4: content_versions
        # =================================================================
        if table_exists(conn, "content_versions"):
            print("content_versions table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE content_versions (
                    id SERIAL PRIMARY KEY,
                    page_id INTEGER NOT NULL REFERENCES journey_pages(id) ON DELETE CASCADE,
                    version_number INTEGER NOT NULL,
                    title VARCHAR(500) NOT NULL DEFAULT '',
                    body TEXT NOT NULL DEFAULT '',
                    hypothesis_id INTEGER REFERENCES hypotheses(id) ON DELETE CASCADE,
                    saved_by VARCHAR(100),
                    saved_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_content_versions_page_version UNIQUE (page_id, version_number)
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_content_versions_hypothesis ON content_versions(hypothesis_id)
            """))
            print("Created content_versions table")

        # =================================================================
        # TABLE 5: correlations
        # =================================================================
        if table_exists(conn, "correlations"):
            print("correlations table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE correlations (
                    id VARCHAR(36) PRIMARY KEY,
                    payment_event_id VARCHAR(255) NOT NULL UNIQUE,
                    client_id INTEGER NOT NULL REFERENCES clients(id),
                    amount INTEGER NOT NULL,
                    currency VARCHAR(3) NOT NULL,
                    provider_status VARCHAR(50) NOT NULL,
                    payment_method VARCHAR(50) NOT NULL DEFAULT 'unknown',
                    occurred_at TIMESTAMP NOT NULL,
                    payload_fingerprint VARCHAR(64) NOT NULL,
                    payment_metadata JSONB,
                    derived_outcome_type VARCHAR(20) NOT NULL,
                    outcome_type VARCHAR(20) NOT NULL,
                    state VARCHAR(20) NOT NULL DEFAULT 'INGESTED',
                    manual_override BOOLEAN NOT NULL DEFAULT FALSE,
                    override_reason TEXT,
                    content_version_id INTEGER REFERENCES content_versions(id) ON DELETE SET NULL,
                    linked_outcome VARCHAR(20),
                    conversion_duration INTEGER,
                    correlation_timestamp TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_correlations_client_occurred ON correlations(client_id, occurred_at)
            """))
            print("Created correlations table")

        # =================================================================
        # TABLE 6: correlation_audit
        # =================================================================
        if table_exists(conn, "correlation_audit"):
            print("correlation_audit table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE correlation_audit (
                    id VARCHAR(36) PRIMARY KEY,
                    correlation_id VARCHAR(36) NOT NULL REFERENCES correlations(id),
                    sequence INTEGER NOT NULL,
                    old_outcome_type VARCHAR(20) NOT NULL,
                    new_outcome_type VARCHAR(20) NOT NULL,
                    old_manual_override BOOLEAN NOT NULL DEFAULT FALSE,
                    reason TEXT NOT NULL,
                    actor_id VARCHAR(100) NOT NULL,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_correlation_audit_sequence UNIQUE (correlation_id, sequence)
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_correlation_audit_correlation ON correlation_audit(correlation_id)
            """))
            print("Created correlation_audit table")

        # =================================================================
        # TABLE 7: outcomes
        # =================================================================
        if table_exists(conn, "outcomes"):
            print("outcomes table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE outcomes (
                    id SERIAL PRIMARY KEY,
                    client_id INTEGER NOT NULL UNIQUE REFERENCES clients(id) ON DELETE CASCADE,
                    journey_outcome VARCHAR(20) NOT NULL,
                    notes TEXT,
                    revenue_amount NUMERIC(10, 2),
                    recorded_by VARCHAR(100),
                    recorded_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """))
            print("Created outcomes table")

        conn.commit()
        print("Revenue engine migration complete")
    return True


if __name__ == "__main__":
    run_migration()
