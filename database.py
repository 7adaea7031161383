from sqlmodel import SQLModel, Session, create_engine

from config import settings

engine = create_engine(settings.db_url, echo=False)


def create_db_and_tables(bind=None):
    import models  # noqa: F401  registers the tables on SQLModel.metadata

    SQLModel.metadata.create_all(bind or engine)


def get_session(bind=None):
    return Session(bind or engine)
