"""
Create all tables.
Run: python -m pathwise.db.init_db
"""
import logging

from pathwise.db.session import engine
from pathwise.db.base import Base

logger = logging.getLogger(__name__)


def init_db() -> None:
    # Registers every model on Base.metadata
    import pathwise.db.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
