from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from chatquota.core import config
DATABASE_URL = config.DATABASE_URL


def build_engine(database_url: str):
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False, "timeout": 30})
    return create_engine(database_url, pool_pre_ping=True)


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
