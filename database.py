from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from config import settings

DATABASE_URL = settings.database_url

# SQLite needs this when the same connection is used from FastAPI's threadpool
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind=None):
    """
    Create all tables. Called on application startup.
    """
    # Import models here so they are registered with Base
    import models  # noqa: F401
    import task_models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
