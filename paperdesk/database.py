"""SQLModel database engine and table creation."""

import logging

from sqlmodel import SQLModel, create_engine

from paperdesk.config import settings

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread=False; PostgreSQL does not
connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.database_url,
    echo=False,
    connect_args=connect_args,
)


def create_db_and_tables(bind=None):
    """Create all tables. Called on startup."""
    import paperdesk.models  # noqa: F401  (registers tables on the metadata)

    SQLModel.metadata.create_all(bind or engine)

