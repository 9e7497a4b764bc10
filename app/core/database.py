"""
Database engine and session management.

SQLAlchemy setup with a FastAPI dependency that yields one session per request.
"""
from sqlalchemy import create_engine, Enum as SQLEnum
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker, declarative_base

from app.core.config import settings
from app.core.exceptions import ConflictError
from app.core.logging import get_logger

logger = get_logger(__name__)

connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yields a database session and closes it afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create all tables. Called once at application startup."""
    from app.features.violation import model as _violation_model  # noqa: F401
    from app.features.payment import model as _payment_model  # noqa: F401
    from app.features.notification import model as _notification_model  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def value_enum(enum_cls, length: int = 32) -> SQLEnum:
    """Enum column type that stores the member *values* (e.g. "pending")."""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=length,
    )


def commit_with_fresh_references(db, entity, reassign, max_attempts=None):
    """
    Insert ``entity``, regenerating its reference numbers on a unique collision.

    ``reassign`` is called after each rollback to draw new references. Gives up
    with ConflictError after ``max_attempts`` (REFERENCE_MAX_ATTEMPTS) tries.
    """
    attempts = max_attempts or settings.REFERENCE_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        db.add(entity)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(
                "Reference number collision",
                extra={"entity": type(entity).__name__, "attempt": attempt},
            )
            if attempt < attempts:
                reassign()
            continue
        db.refresh(entity)
        return entity
    raise ConflictError(f"Could not allocate unique reference numbers after {attempts} attempts")
