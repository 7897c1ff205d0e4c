"""
Database engine and session helpers.
"""

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

_ENGINES: dict[str, Engine] = {}


def get_engine(database_url: str) -> Engine:
    """
    Engines are shared per URL so the index and the sample store
    of one configuration talk to the same connection pool.
    """
    if database_url not in _ENGINES:
        _ENGINES[database_url] = create_engine(database_url)

    return _ENGINES[database_url]


def create_database_and_tables(engine: Engine):
    import fluxtiles.orm  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session(engine: Engine):
    return Session(engine)
