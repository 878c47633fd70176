from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from swms_api.core.config import settings

url = make_url(settings.DATABASE_URL)

engine_kwargs = {"pool_pre_ping": True}
if url.get_backend_name().startswith("postgresql"):
    engine_kwargs["connect_args"] = {"options": "-c timezone=utc"}
elif url.get_backend_name() == "sqlite":
    # In-memory SQLite (tests, local tooling) must share one connection across threads
    engine_kwargs["connect_args"] = {"check_same_thread": False}
    if not url.database or url.database == ":memory:":
        engine_kwargs["poolclass"] = StaticPool

engine = create_engine(settings.DATABASE_URL, **engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
