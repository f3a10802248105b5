from typing import Generator

from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.db.database import engine

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def import_models() -> None:
    """Register every mapped class on ``Base.metadata``."""
    from app.models import crisis_event, emergency_alert, emergency_contact, messages, user  # noqa: F401


def create_all(bind=None) -> None:
    import_models()
    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
