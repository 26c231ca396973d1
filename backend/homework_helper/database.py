from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
import os
import time
import logging

logger = logging.getLogger(__name__)

# Set up query logger
query_logger = logging.getLogger("sqlalchemy.query_timing")
query_logger.setLevel(logging.DEBUG if os.getenv("DEBUG_QUERIES") else logging.WARNING)

# Slow query threshold in milliseconds
SLOW_QUERY_THRESHOLD_MS = int(os.getenv("SLOW_QUERY_THRESHOLD_MS", "100"))

# Aggregation queries are capped server-side so dashboards fail fast into their fallback
DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000"))

# Database URL - will use SQLite for local development
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./homework_helper.db")

if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)


def create_db_engine(url: str) -> Engine:
    """Build an engine with pool and timeout settings suited to the backend."""
    if "sqlite" in url:
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 5},
            pool_pre_ping=True,
        )

    # PostgreSQL with production-ready pool settings
    return create_engine(
        url,
        connect_args={
            "connect_timeout": 10,
            "options": f"-c statement_timeout={DB_STATEMENT_TIMEOUT_MS}",
        },
        pool_pre_ping=True,      # Detect stale connections
        pool_recycle=1800,       # Recycle connections after 30 minutes
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,         # Wait for connection timeout
    )


engine = create_db_engine(DATABASE_URL)


# Query timing event listeners for slow query logging
@event.listens_for(Engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Record query start time."""
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(Engine, "after_cursor_execute")
def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Log slow queries."""
    start_times = conn.info.get("query_start_time", [])
    if start_times:
        total_time_ms = (time.perf_counter() - start_times.pop()) * 1000

        if total_time_ms > SLOW_QUERY_THRESHOLD_MS:
            truncated_statement = statement[:500] + "..." if len(statement) > 500 else statement
            truncated_params = str(parameters)[:200] + "..." if len(str(parameters)) > 200 else str(parameters)

            query_logger.warning(
                f"SLOW QUERY ({total_time_ms:.2f}ms): {truncated_statement} | params={truncated_params}"
            )


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for FastAPI routes"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ping_database(bind: Engine) -> bool:
    """Return True if a trivial query round-trips, False if the store is unreachable."""
    try:
        with bind.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.warning("Database ping failed: %s", e)
        return False


def init_db(bind: Engine) -> bool:
    """Create tables if missing. Returns False when the database cannot be reached."""
    # Import models so they register with Base.metadata
    import homework_helper.models.models  # noqa: F401

    try:
        Base.metadata.create_all(bind=bind)
        return True
    except SQLAlchemyError as e:
        logger.error("Could not initialise database tables: %s", e)
        return False
