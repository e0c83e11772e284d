from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

Base = declarative_base()


def make_engine(database_url: str) -> Engine:
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {}
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    # Records are handed back to callers after the session closes
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    # Model import registers the tables on Base.metadata
    from payment_service import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
