import logging
import time

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL

logger = logging.getLogger(__name__)


def make_engine(url: str):
    if url.startswith("sqlite"):
        # in-memory sqlite needs a single shared connection across threads
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        echo=False,
        pool_recycle=300,
    )


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def wait_for_db(max_retries=30, retry_interval=2):
    logger.info("Waiting for the database to accept connections...")

    for attempt in range(max_retries):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database is available")
            return True
        except OperationalError as e:
            logger.warning(f"Attempt {attempt + 1}/{max_retries}: database not available yet ({e})")
            if attempt < max_retries - 1:
                time.sleep(retry_interval)

    logger.error("Could not connect to the database after all retries")
    return False


def check_database() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except OperationalError as e:
        logger.warning(f"Database health check failed: {e}")
        return False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    import models  # noqa: F401  registers the mappers on Base

    Base.metadata.create_all(bind=engine)
