from __future__ import annotations
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./noteneo.db"

Base = declarative_base()


def make_engine(url: str) -> Engine:
	connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
	return create_engine(url, connect_args=connect_args, future=True)


def make_sessionmaker(bind: Engine) -> sessionmaker:
	return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind, future=True)


engine = make_engine(DATABASE_URL)
SessionLocal = make_sessionmaker(engine)


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Best-effort lightweight migrations for development (SQLite-friendly)
def ensure_schema(bind: Engine | None = None) -> None:
	bind = bind or engine
	try:
		inspector = inspect(bind)
		tables = set(inspector.get_table_names())
	except Exception:
		return
	if "notes" in tables:
		cols = {c["name"] for c in inspector.get_columns("notes")}
		with bind.begin() as conn:
			if "semester" not in cols:
				conn.exec_driver_sql("ALTER TABLE notes ADD COLUMN semester VARCHAR(64) DEFAULT 'N/A' NOT NULL")
			if "processed_by" not in cols:
				conn.exec_driver_sql("ALTER TABLE notes ADD COLUMN processed_by VARCHAR(128)")
	if "profiles" in tables:
		cols = {c["name"] for c in inspector.get_columns("profiles")}
		with bind.begin() as conn:
			if "followers_count" not in cols:
				conn.exec_driver_sql("ALTER TABLE profiles ADD COLUMN followers_count INTEGER DEFAULT 0 NOT NULL")
			if "following_count" not in cols:
				conn.exec_driver_sql("ALTER TABLE profiles ADD COLUMN following_count INTEGER DEFAULT 0 NOT NULL")
