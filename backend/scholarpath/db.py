from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./scholarpath.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
	# SQLite ignores FOREIGN KEY clauses unless asked per connection
	if type(dbapi_connection).__module__.startswith("sqlite3"):
		cursor = dbapi_connection.cursor()
		cursor.execute("PRAGMA foreign_keys=ON")
		cursor.close()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
	"""Run a block of writes as one unit: commit on exit, roll back on any error.

	Open it immediately before the first write and leave it right after the last,
	so the scope holds the database for as little time as possible.
	"""
	try:
		yield db
		db.commit()
	except BaseException:
		db.rollback()
		raise


# Lightweight migrations for databases created before a column existed
def ensure_schema(bind=None) -> None:
	bind = bind or engine
	inspector = inspect(bind)
	tables = set(inspector.get_table_names())
	if "questions" in tables:
		cols = {c["name"] for c in inspector.get_columns("questions")}
		with bind.begin() as conn:
			# Older rows stay NULL and are classified by their options
			if "question_type" not in cols:
				conn.exec_driver_sql("ALTER TABLE questions ADD COLUMN question_type VARCHAR(32)")
			if "reference_answer" not in cols:
				conn.exec_driver_sql("ALTER TABLE questions ADD COLUMN reference_answer TEXT")
