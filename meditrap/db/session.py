"""Engine and session factory.

The engine is created on first use so importing models or the API does not
require a reachable database.
"""

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from meditrap.core.config import get_settings

SessionLocal = sessionmaker(autocommit=False, autoflush=False)


@lru_cache
def get_engine() -> Engine:
    settings = get_settings()
    return create_engine(settings.database_url, pool_pre_ping=True)


def new_session():
    """Open a session bound to the configured engine."""
    return SessionLocal(bind=get_engine())
