"""SQLite engine, session factory and ORM model for clipboard history"""

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional
from sqlalchemy import create_engine, event, Column, String, DateTime, Text, Boolean, Integer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from loguru import logger

from ..errors import StorageError, StorageInitError
from ...utils.paths import get_data_dir

Base = declarative_base()

MEMORY_DB = ':memory:'


class ClipboardItemDB(Base):
    """Database model for clipboard history items"""
    __tablename__ = 'clipboard_items'

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False, index=True)
    content = Column(Text, nullable=False)
    content_hash = Column(String(64), nullable=False, index=True)
    content_type = Column(String(20), nullable=False)
    code_language = Column(String(50))
    source_app = Column(String(100), nullable=False, default='unknown')
    timestamp = Column(DateTime, nullable=False, index=True)
    size = Column(Integer, nullable=False)
    is_favorite = Column(Boolean, nullable=False, default=False)
    tags = Column(Text, nullable=False, default='[]')  # JSON list
    preview = Column(Text, nullable=False)


class DatabaseManager:
    """Owns the SQLite engine and hands out sessions"""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize database manager

        Args:
            db_path: Path to database file, ':memory:' for a private in-memory
                store (defaults to app data directory)

        Raises:
            StorageInitError: Database cannot be opened or its schema created
        """
        if db_path is None:
            data_dir = get_data_dir()
            data_dir.mkdir(parents=True, exist_ok=True)
            db_path = str(data_dir / 'clipboard.db')

        self.db_path = str(db_path)
        self.engine = None
        self.SessionLocal = None

        self._initialize_database()

    @property
    def is_memory(self) -> bool:
        return self.db_path == MEMORY_DB

    def _initialize_database(self):
        """Create the engine and the schema"""
        try:
            if self.is_memory:
                # One shared connection, otherwise every checkout gets an empty database
                self.engine = create_engine(
                    'sqlite://',
                    connect_args={'check_same_thread': False},
                    poolclass=StaticPool
                )
            else:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                self.engine = create_engine(
                    f'sqlite:///{self.db_path}',
                    connect_args={'check_same_thread': False, 'timeout': 10}
                )

            self._install_sqlite_hooks()

            Base.metadata.create_all(bind=self.engine)

            self.SessionLocal = sessionmaker(autocommit=False, autoflush=False,
                                             expire_on_commit=False, bind=self.engine)

            logger.info(f"Database initialized at: {self.db_path}")

        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Cannot open clipboard database {self.db_path}: {e}")
            raise StorageInitError(f"Failed to initialize database at {self.db_path}", e) from e

    def _install_sqlite_hooks(self):
        """Take the write lock at transaction start so concurrent writers queue up"""
        memory = self.is_memory

        @event.listens_for(self.engine, 'connect')
        def _on_connect(dbapi_connection, connection_record):
            # Let SQLAlchemy's begin event issue BEGIN instead of pysqlite
            dbapi_connection.isolation_level = None
            if not memory:
                cursor = dbapi_connection.cursor()
                cursor.execute('PRAGMA journal_mode=WAL')
                cursor.close()

        @event.listens_for(self.engine, 'begin')
        def _on_begin(conn):
            conn.exec_driver_sql('BEGIN IMMEDIATE')

    def get_session(self) -> Session:
        if self.SessionLocal is None:
            raise RuntimeError("Database not initialized")
        return self.SessionLocal()

    @contextmanager
    def _raw_connection(self):
        """DBAPI connection outside SQLAlchemy's transaction handling"""
        raw = self.engine.raw_connection()
        try:
            yield raw.driver_connection
        finally:
            raw.close()

    def close(self):
        if self.engine:
            self.engine.dispose()
            logger.info("Database connection closed")

    def vacuum(self):
        """Fold the WAL back into the main file and rebuild it"""
        with self._raw_connection() as conn:
            try:
                if not self.is_memory:
                    conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
                conn.execute("VACUUM")
            except sqlite3.Error as e:
                logger.error(f"VACUUM failed: {e}")
                raise

        logger.info("Database optimized (VACUUM completed)")

    def get_size(self) -> int:
        """On-disk size in bytes of the database and its WAL; 0 for in-memory stores"""
        if self.is_memory:
            return 0

        return sum(
            os.path.getsize(path)
            for path in (self.db_path, self.db_path + '-wal')
            if os.path.exists(path)
        )

    def reset(self):
        """Drop and recreate every table"""
        try:
            Base.metadata.drop_all(bind=self.engine)
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            logger.error(f"Database reset failed: {e}")
            raise StorageError("Failed to reset database", e) from e

        logger.info("Database reset completed")
