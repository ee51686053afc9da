"""Database session for worker."""

from sqlalchemy.orm import sessionmaker

from riskaccept_api.db.session import build_engine
from riskaccept_worker.settings import get_settings

settings = get_settings()

engine = build_engine(settings.database_url_computed)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
