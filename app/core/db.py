from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from loguru import logger

from app.core.config import DATABASE_URL

# --- Base (single source of truth) ---
Base = declarative_base()


def make_engine(url: str):
    return create_engine(
        url,
        echo=False,
        future=True,
        connect_args={"check_same_thread": False}
        if url.startswith("sqlite")
        else {},
    )


# --- Engine ---
engine = make_engine(DATABASE_URL)

# --- Session factory ---
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)

# --- SQL query logging ---
@event.listens_for(engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    logger.trace(f"SQL: {statement} | params={parameters}")
