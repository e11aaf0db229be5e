from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from cleansort.core.config import settings


def build_engine(url: str = settings.DATABASE_URL):
    if url.startswith("sqlite"):
        # SQLite connections are shared with the dispatcher's worker thread
        return create_engine(url, connect_args={"check_same_thread": False}, echo=False)
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_recycle=300,      # Recycle connections every 5 minutes
        pool_pre_ping=True,    # Validate connections before use
        echo=False,
    )


engine = build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
