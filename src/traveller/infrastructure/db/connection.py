import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


DEFAULT_DATABASE_URL = "sqlite:///traveller.db"


def database_url() -> str:
    return os.getenv("TRAVELLER_DATABASE_URL", DEFAULT_DATABASE_URL)


def create_session_factory(url: str | None = None, *, echo: bool = False) -> sessionmaker:
    engine = create_engine(url or database_url(), echo=echo, future=True)
    return sessionmaker(bind=engine, autoflush=False)
