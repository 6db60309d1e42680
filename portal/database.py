"""
Database Configuration and Session Management

SQLAlchemy engine, session factory and the per-request transaction scope.

Every orchestration call runs inside transaction(): all steps commit
together or the whole unit is rolled back.
"""
from contextlib import contextmanager
from sqlalchemy import create_engine, event
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool
from portal.config import get_settings
import logging

logger = logging.getLogger(__name__)

settings = get_settings()

if settings.DATABASE_URL.startswith("sqlite"):
    # SQLite is only used for tests and local tinkering. A single shared
    # connection keeps in-memory databases alive across sessions.
    engine = create_engine(
        settings.DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=settings.DEBUG,
    )
else:
    engine = create_engine(
        settings.DATABASE_URL,
        poolclass=QueuePool,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )

# expire_on_commit=False so handlers can build responses from rows after
# the transaction has been committed.
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False
)

# Base class for all models
Base = declarative_base()


@event.listens_for(engine, "connect")
def set_connection_timezone(dbapi_connection, connection_record):
    """All timestamps are stored and compared in UTC."""
    cursor = dbapi_connection.cursor()
    if settings.DATABASE_URL.startswith("postgresql"):
        cursor.execute("SET TIME ZONE 'UTC'")
    cursor.close()
    logger.debug("New database connection established")


def get_db() -> Session:
    """
    Dependency function that provides a database session.

    The session is closed after the request completes. Committing is the
    job of transaction(), not of this dependency.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """
    Run a unit of work on db.

    Commits when the block exits normally. Any exception rolls back every
    pending change made inside the block and is re-raised unchanged.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        logger.debug("Transaction rolled back")
        raise


def seed_reference_data(db: Session) -> None:
    """
    Insert subscription feature entitlements if the table is empty.

    Client logins fail without features, so a fresh database needs them.
    """
    from portal.core.constants import DEFAULT_SUBSCRIPTION_FEATURES
    from portal.models.subscription import SubscriptionFeature

    if db.query(SubscriptionFeature).first() is not None:
        return

    with transaction(db):
        for subscription_id, feature_ids in DEFAULT_SUBSCRIPTION_FEATURES.items():
            for feature_id in feature_ids:
                db.add(SubscriptionFeature(subscription_id=subscription_id, feature_id=feature_id))
    logger.info("Seeded subscription features")


def init_db():
    """
    Create tables and seed reference data.

    Development and tests only; production schemas are managed by migrations.
    """
    import portal.models  # noqa: F401  (register mappers)

    logger.warning("init_db() called - use migrations in production!")
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_reference_data(db)
    finally:
        db.close()
