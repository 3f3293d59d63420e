"""
Database engine and session management.
Supports SQLite (file or in-memory) and PostgreSQL.

Version: 1.0.0
"""
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

logger = logging.getLogger(__name__)

# Shared declarative base for all ORM models
Base = declarative_base()


def _enable_sqlite_wal_mode(dbapi_connection, connection_record):
    """Enable WAL mode and foreign keys for SQLite connections."""
    try:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA temp_store=MEMORY")
        cursor.close()
        logger.debug("SQLite WAL mode and optimizations enabled")
    except Exception as e:
        logger.warning(f"Failed to enable SQLite optimizations: {e}")


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in url


class Database:
    """
    Owns one engine and its session factory.

    Instances are created by the entry point (or a test fixture) and
    handed to the SQL conversation store; there is no module-level engine.
    """

    def __init__(
        self,
        url: str,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        pool_recycle: int = 3600,
        application_name: str = "support-console",
    ):
        self.url = url
        self._lock = threading.Lock()
        self.engine = self._create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            application_name=application_name,
        )
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False,
        )
        self._schema_ready = False

    @classmethod
    def from_settings(cls, settings) -> "Database":
        """Build a database from application settings."""
        return cls(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_pool_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
            application_name=settings.app_name,
        )

    @staticmethod
    def _create_engine(url: str, echo: bool, pool_size: int, max_overflow: int,
                       pool_timeout: int, pool_recycle: int,
                       application_name: str) -> Engine:
        logger.info("Creating database engine...")

        if url.startswith("sqlite"):
            if _is_memory_sqlite(url):
                # One shared connection so every thread sees the same database
                engine = create_engine(
                    url,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                    echo=echo,
                )
                logger.info("In-memory SQLite database engine created")
            else:
                db_path = url.replace("sqlite:///", "")
                if not os.path.isabs(db_path):
                    db_dir = os.path.dirname(db_path)
                    if db_dir:
                        Path(db_dir).mkdir(parents=True, exist_ok=True)

                engine = create_engine(
                    url,
                    connect_args={"check_same_thread": False, "timeout": 20},
                    echo=echo,
                    pool_pre_ping=True,
                    pool_recycle=pool_recycle,
                )
                event.listen(engine, "connect", _enable_sqlite_wal_mode)
                logger.info(f"SQLite database engine created: {db_path}")

        elif url.startswith(("postgresql", "postgres")):
            engine = create_engine(
                url,
                poolclass=QueuePool,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                pool_pre_ping=True,
                pool_use_lifo=True,
                echo=echo,
                connect_args={
                    "application_name": application_name,
                    "connect_timeout": 10,
                    "options": "-c timezone=UTC",
                },
            )
            logger.info(
                f"PostgreSQL database engine created "
                f"(pool_size={pool_size}, max_overflow={max_overflow})"
            )

        else:
            engine = create_engine(
                url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_pre_ping=True,
                echo=echo,
            )
            logger.info("Generic database engine created")

        return engine

    def init_schema(self) -> None:
        """Create all tables (idempotent)."""
        with self._lock:
            if self._schema_ready:
                return

            # Register models on Base.metadata
            from . import models  # noqa: F401

            try:
                Base.metadata.create_all(bind=self.engine)
                tables = inspect(self.engine).get_table_names()
                self._schema_ready = True
                logger.info(f"✓ Database schema ready ({len(tables)} tables)")
            except SQLAlchemyError as e:
                logger.error(f"Failed to create database schema: {e}", exc_info=True)
                raise

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Transactional session: commits on success, rolls back on error.

        Yields:
            Database session
        """
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception as e:
            logger.debug(f"Database session rolled back: {e}")
            db.rollback()
            raise
        finally:
            db.close()

    def check_connection(self) -> bool:
        """Run a trivial query against the database."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    def get_info(self) -> Dict[str, Any]:
        """Engine information for health reports."""
        info: Dict[str, Any] = {
            "dialect": self.engine.dialect.name,
            "schema_ready": self._schema_ready,
        }
        pool = self.engine.pool
        if hasattr(pool, "size"):
            try:
                info["pool_size"] = pool.size()
                info["checked_out"] = pool.checkedout()
            except (AttributeError, TypeError):
                pass
        return info

    def dispose(self) -> None:
        """Release all pooled connections."""
        self.engine.dispose()
        logger.info("✓ Database engine disposed")


def create_database(settings=None, url: Optional[str] = None) -> Database:
    """
    Create a database from settings or an explicit URL and ensure the schema.

    Args:
        settings: Application settings (used when url is not given)
        url: Explicit SQLAlchemy URL

    Returns:
        Initialized Database
    """
    if url is not None:
        database = Database(url)
    elif settings is not None:
        database = Database.from_settings(settings)
    else:
        raise ValueError("Either settings or url is required")

    database.init_schema()
    return database


__all__ = ["Base", "Database", "create_database"]
