"""SQLAlchemy engine, session factory and declarative base for the entitlement tables."""

from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from core.env import env_bool, env_int, env_str

DATABASE_URL = env_str("DATABASE_URL") or env_str("TEST_DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL 또는 TEST_DATABASE_URL 환경 변수가 설정되어 있어야 합니다.")

IS_POSTGRES = DATABASE_URL.lower().startswith("postgresql")
if not IS_POSTGRES and not env_bool("DATABASE_ALLOW_NON_POSTGRES", False):
    raise RuntimeError(f"엔타이틀먼트 저장소는 PostgreSQL을 사용해야 합니다. 현재 DATABASE_URL: {DATABASE_URL}")


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": env_int("DATABASE_POOL_SIZE", 5, minimum=1),
        "max_overflow": env_int("DATABASE_MAX_OVERFLOW", 10, minimum=0),
        "pool_recycle": env_int("DATABASE_POOL_RECYCLE_SECONDS", 1800, minimum=0),
    }


def build_engine(url: str) -> Engine:
    return create_engine(url, echo=env_bool("DATABASE_ECHO", False), **_engine_options(url))


engine = build_engine(DATABASE_URL)
# Services only flush; the router that owns the request decides commit or rollback.
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base shared by organization, workspace and billing tables."""


def get_db():
    """요청 단위 세션을 제공하고 응답 후 닫습니다."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
