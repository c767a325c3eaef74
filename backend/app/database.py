"""
Revenue Intelligence Engine - Database Configuration
SQLAlchemy engine, session factory and declarative base
"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import DATABASE_URL, SQL_ECHO


def _configure_sqlite(engine):
    """
    Let SQLAlchemy own transaction boundaries on pysqlite so SAVEPOINTs
    (Session.begin_nested) behave, and enforce foreign keys.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str = DATABASE_URL, **kwargs):
    """Create an engine; SQLite connections may be shared across threads."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    engine = create_engine(url, echo=SQL_ECHO, connect_args=connect_args, **kwargs)
    if url.startswith("sqlite"):
        _configure_sqlite(engine)
    return engine


# Create engine
engine = build_engine()

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models
Base = declarative_base()


def get_db():
    """Dependency for FastAPI - yields database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize database - create all tables."""
    # Import models so they register on Base.metadata
    from .models import db_models  # noqa: F401

    Base.metadata.create_all(bind=engine)
