import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from quoteforge.config import config
from quoteforge.exceptions import DatabaseError

logger = logging.getLogger(__name__)


class Database:
    """Database connection manager for QuoteForge."""

    _instance = None

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Database, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the database connection if not already initialized."""
        if self._initialized:
            return

        self._engine = None
        self._session_factory = None
        self._session = None
        self._initialized = True

    def initialize(self, connection_string=None):
        """Initialize database connection.

        Args:
            connection_string: Optional database URL.
                              If not provided, will use configuration.
        """
        if connection_string is None:
            connection_string = config.get_db_url()

        echo = config.get_boolean('DATABASE', 'echo', False)

        engine_options = {'echo': echo}
        if connection_string.startswith('sqlite'):
            # In-memory databases must share one connection across sessions
            if ':memory:' in connection_string or connection_string == 'sqlite://':
                engine_options['poolclass'] = StaticPool
            engine_options['connect_args'] = {'check_same_thread': False}
        else:
            engine_options.update(
                pool_size=config.get_int('DATABASE', 'pool_size', 10),
                max_overflow=config.get_int('DATABASE', 'max_overflow', 20),
                pool_timeout=config.get_int('DATABASE', 'pool_timeout', 30),
                pool_recycle=config.get_int('DATABASE', 'pool_recycle', 1800)
            )

        if self._session is not None:
            self._session.remove()

        self._engine = create_engine(connection_string, **engine_options)
        self._session_factory = sessionmaker(bind=self._engine)
        self._session = scoped_session(self._session_factory)
        logger.info(f"Database initialized ({self._engine.url.get_backend_name()})")

    def create_all_tables(self):
        """Create all tables defined in the models."""
        from quoteforge.models import Base
        Base.metadata.create_all(self.engine)

    def drop_all_tables(self):
        """Drop all tables from the database."""
        from quoteforge.models import Base
        Base.metadata.drop_all(self.engine)

    @property
    def session(self):
        """Get the current database session."""
        if self._session is None:
            self.initialize()
        return self._session

    @property
    def engine(self):
        """Get the database engine."""
        if self._engine is None:
            self.initialize()
        return self._engine

    @contextmanager
    def session_scope(self):
        """Provide a transactional scope around a series of operations."""
        session = self.session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise DatabaseError(str(e), details={'error_type': type(e).__name__}) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def check_connection(self):
        """Check that the database answers a trivial query.

        Returns:
            True if the query succeeds
        """
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True


# Global database instance
db = Database()


@contextmanager
def session_scope():
    """Session scope context manager."""
    with db.session_scope() as session:
        yield session
