from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from memoryhaven.core.logger import logger
from memoryhaven.memory.models import Base


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Owns the engine and session factory for one journal database.

    Constructed explicitly at startup and passed to whoever needs it;
    call ``init()`` before use and ``dispose()`` at shutdown.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        connect_args = {}
        if url.startswith("sqlite"):
            # Sessions are opened from executor threads
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(url, echo=echo, connect_args=connect_args)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def init(self):
        logger.info("Initializing database at: {}", self.engine.url.render_as_string(hide_password=True))
        Base.metadata.create_all(self.engine)
        logger.info("Database tables ready")

    @contextmanager
    def session_scope(self):
        """Transactional scope: commit on success, rollback on any error."""
        session: Session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self):
        self.engine.dispose()
        logger.info("Database connection closed")
