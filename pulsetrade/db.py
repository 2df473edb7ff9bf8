"""
Database Management Module for PulseTrade

Owns the SQLAlchemy engine, the scoped session factory and the declarative
base shared by every model. PostgreSQL (via psycopg2) is the production
target; SQLite is accepted for development and tests.
"""

import logging

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, scoped_session, declarative_base
from sqlalchemy.pool import StaticPool
from sqlalchemy_utils import database_exists, create_database

logger = logging.getLogger(__name__)

# Base class for all models
Base = declarative_base()

class DatabaseConnectionError(Exception):
    """Custom exception for database connection errors."""
    pass

class Database:
    """Database interface for PulseTrade."""

    def __init__(self, db_url, max_connections=20, connection_timeout=30):
        """
        Initialize Database with connection management.

        Args:
            db_url (str): Database connection URL
            max_connections (int): Maximum number of database connections
            connection_timeout (int): Connection timeout in seconds
        """
        self.db_url = db_url
        self.max_connections = max_connections
        self.connection_timeout = connection_timeout

        # Core database components
        self.engine = None
        self.SessionFactory = None

        # State tracking
        self.initialized = False

        # Logging configuration
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def is_sqlite(self):
        return self.db_url.startswith("sqlite")

    def _engine_options(self):
        """
        Build engine keyword arguments for the configured backend.

        Returns:
            dict: Keyword arguments for create_engine
        """
        if self.is_sqlite:
            options = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in self.db_url or self.db_url in ("sqlite://", "sqlite:///"):
                # One shared connection, otherwise every session sees an empty database
                options["poolclass"] = StaticPool
            return options

        return {
            "pool_size": self.max_connections // 2,
            "max_overflow": self.max_connections // 2,
            "pool_timeout": self.connection_timeout,
            "pool_recycle": 1800,  # Recycle connections every 30 minutes
            "pool_pre_ping": True,
        }

    def initialize(self):
        """
        Create the engine, the session factory and any missing tables.

        Returns:
            bool: True if initialization successful

        Raises:
            DatabaseConnectionError: If the database cannot be reached
        """
        if self.initialized:
            return True

        try:
            self.logger.info("Initializing database connection")

            # Create database if not exists
            if not self.is_sqlite and not database_exists(self.db_url):
                self.logger.warning("Database does not exist. Creating...")
                create_database(self.db_url)

            self.engine = create_engine(self.db_url, echo=False, **self._engine_options())

            # Create scoped session factory
            self.SessionFactory = scoped_session(sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False
            ))

            # Make sure every model is registered on Base before creating tables
            from pulsetrade import user, trade, transaction, bank_account, setting  # noqa: F401

            # Create tables if they don't exist
            Base.metadata.create_all(self.engine)

            self.initialized = True
            self.logger.info("Database initialized successfully")
            return True

        except Exception as e:
            self.logger.error(f"Database initialization failed: {e}")
            raise DatabaseConnectionError(f"Could not initialize database: {e}")

    def get_session(self):
        """
        Get a thread-local SQLAlchemy session.

        Returns:
            SQLAlchemy session
        """
        if not self.initialized:
            self.initialize()

        return self.SessionFactory()

    def test_connection(self):
        """
        Run a trivial query against the database.

        Returns:
            bool: Connection test result
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            self.logger.error(f"Connection test failed: {e}")
            return False

    def close(self):
        """
        Gracefully close all database connections and resources.
        """
        self.logger.info("Closing database connections")

        if self.SessionFactory:
            self.SessionFactory.remove()
        if self.engine:
            self.engine.dispose()

        self.initialized = False
