from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from chatrelay import config


def create_db_engine(url: str = config.DATABASE_URL):
    # sqlite is only used for local runs and tests
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    return create_engine(
        url,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=0,
        pool_timeout=config.DB_POOL_TIMEOUT,
        pool_recycle=1800,
        pool_pre_ping=True,
    )


def create_tables(pg_engine) -> None:
    # importing models registers the tables on SQLModel.metadata
    from chatrelay import models  # noqa: F401

    SQLModel.metadata.create_all(pg_engine)
