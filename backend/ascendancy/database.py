"""
Database Engine & Session Management
SQLAlchemy setup with dependency injection for FastAPI.
"""
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from ascendancy.config import get_settings

settings = get_settings()

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

# Ensure data directory exists for file-backed SQLite
if _is_sqlite:
    _db_dir = os.path.dirname(settings.DATABASE_URL.replace("sqlite:///", ""))
    if _db_dir:
        os.makedirs(_db_dir, exist_ok=True)

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    echo=settings.DEBUG,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yields a database session, auto-closes on finish."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables. Called once at application startup."""
    from ascendancy.models import user as _user_model            # noqa: F401
    from ascendancy.models import payment as _payment_model      # noqa: F401
    from ascendancy.models import subscription as _sub_model     # noqa: F401
    from ascendancy.models import otp as _otp_model              # noqa: F401
    from ascendancy.models import audit as _audit_model          # noqa: F401

    Base.metadata.create_all(bind=engine)
