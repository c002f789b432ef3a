from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from mockexam.core.config import get_settings


@lru_cache()
def get_engine() -> Engine:
    settings = get_settings()
    return create_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO, future=True, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    # records are mapped to domain objects before commit, nothing needs reloading
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


@lru_cache()
def get_session_factory() -> sessionmaker:
    return make_session_factory(get_engine())


def init_db(engine: Engine = None) -> None:
    """Create tables if they don't exist. In production, use migrations instead."""
    from mockexam.models.orm import Base

    Base.metadata.create_all(engine or get_engine())
