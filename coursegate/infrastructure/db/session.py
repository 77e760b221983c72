from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from coursegate.config import get_settings
from .base import Base

settings = get_settings()

connect_args = {}
if settings.database_url.startswith("sqlite"):
    # Request handlers run in a threadpool
    connect_args["check_same_thread"] = False

engine = create_engine(settings.database_url, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

__all__ = ["Base", "engine", "SessionLocal"]
