from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def make_engine(database_url: str, echo: bool = False) -> Engine:
    """Build an engine for the given URL.

    SQLite connections are shared across the request thread pool, so they
    skip the same-thread check and wait on locks instead of failing fast.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=echo,
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=300,
        echo=echo,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables if they don't exist."""
    # models must be imported so the table is registered on Base.metadata
    from walletwise import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
