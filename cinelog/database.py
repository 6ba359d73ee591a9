import logging

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from . import config

connect_args = {}
if "sqlite" in config.DATABASE_URL:
    connect_args = {"check_same_thread": False}

engine = create_engine(config.DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Columns added after the first release: table -> {column: DDL type}
LATE_COLUMNS = {
    "users": {
        "username": "VARCHAR",
        "top5": "JSON",
        "is_public": "BOOLEAN DEFAULT TRUE",
    },
    "log_entries": {
        "is_rewatch": "BOOLEAN DEFAULT FALSE",
        "tags": "JSON",
    },
}


def run_migrations(bind=None):
    # Additive only, works on both SQLite and Postgres
    bind = bind or engine
    inspector = inspect(bind)
    with bind.connect() as conn:
        try:
            for table, columns in LATE_COLUMNS.items():
                if not inspector.has_table(table):
                    continue
                existing = {c['name'] for c in inspector.get_columns(table)}
                for col, ddl in columns.items():
                    if col not in existing:
                        logging.info(f"Migrating DB: Adding {col} column to {table}")
                        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col} {ddl}"))
            conn.commit()
        except Exception as e:
            logging.error(f"Migration failed: {e}")
            conn.rollback()
            raise


def init_db(bind=None):
    # Models must be imported so their tables are registered on Base
    from . import models  # noqa: F401

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    run_migrations(bind)
