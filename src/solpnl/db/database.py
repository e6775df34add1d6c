import os
from contextlib import contextmanager
from typing import Optional
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
import logging

DEFAULT_DB_URL = "sqlite:///data/solpnl.db"

Base = declarative_base()

class DatabaseConnection:
    def __init__(self, db_url: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self.db_url = db_url or os.getenv('DB_URL') or DEFAULT_DB_URL
        self.engine = self._create_engine()
        self.session_factory = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False
        )

    def _create_engine(self):
        try:
            if self.db_url.startswith("sqlite"):
                return self._create_sqlite_engine()

            return create_engine(
                self.db_url,
                pool_size=5,                # Connection pool size
                max_overflow=10,            # Max extra connections
                pool_timeout=30,            # Seconds to wait for connection
                pool_recycle=1800,          # Recycle connections after 30 mins
                echo=False                  # Set to True for SQL logging
            )
        except Exception as e:
            self.logger.error(f"Failed to create database engine: {str(e)}")
            raise

    def _create_sqlite_engine(self):
        if self.db_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees an empty database
            return create_engine(
                self.db_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=False
            )

        path = self.db_url.replace("sqlite:///", "", 1)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        return create_engine(self.db_url, connect_args={"check_same_thread": False}, echo=False)

    @contextmanager
    def session_scope(self, session=None):
        """Transaction scope; joins the caller's session when one is passed in"""
        if session is not None:
            yield session
            return

        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception as e:
            self.logger.error(f"Database transaction failed, rolling back: {str(e)}")
            session.rollback()
            raise
        finally:
            session.close()

    def test_connection(self):
        """Test database connection"""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
                self.logger.info("Successfully connected to the database")
                return True
        except Exception as e:
            self.logger.error(f"Failed to connect to database: {str(e)}")
            return False

    def init_db(self):
        """Initialize database tables"""
        # Registers the mapped classes on Base.metadata
        from . import models  # noqa: F401
        try:
            Base.metadata.create_all(self.engine)
            self.logger.info("Database tables created successfully")
        except Exception as e:
            self.logger.error(f"Failed to create database tables: {str(e)}")
            raise

    def dispose(self):
        self.engine.dispose()
