"""
Engine and session setup for stored printer configuration.
Print jobs live in memory only; nothing here touches the queue.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from contextlib import contextmanager
from dotenv import load_dotenv
import logging
import os

logger = logging.getLogger(__name__)

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./billprint.db")


def _engine_options(url):
    if url.startswith("sqlite"):
        # Worker ticks and request handlers share the engine across threads
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
    }


engine = create_engine(DATABASE_URL, echo=False, **_engine_options(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency yielding a request-scoped session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context():
    """Session for startup and scripts; commits on success"""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Printer store error: {e}")
        raise
    finally:
        db.close()


def init_db():
    """Create the printer tables if they are missing"""
    import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("✓ Printer tables ready")
    except Exception as e:
        logger.error(f"✗ Failed to create printer tables: {e}")
        raise


def drop_all_tables():
    Base.metadata.drop_all(bind=engine)
    logger.warning("⚠ Printer tables dropped")
