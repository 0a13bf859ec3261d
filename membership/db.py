from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import MembershipError, PersistenceError
from .logger import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Storage:
    """Engine plus session factory; every mutation runs inside ``session()``."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = self._create_engine(url, echo)
        self.session_factory = sessionmaker(
            self.engine,
            class_=Session,
            expire_on_commit=False,
            autoflush=False,
        )

    @staticmethod
    def _create_engine(url: str, echo: bool):
        if not url.startswith("sqlite"):
            return create_engine(url, echo=echo, pool_pre_ping=True, pool_size=10, max_overflow=20)

        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise each session sees its own empty database
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    def create_all(self) -> None:
        from . import tables  # noqa: F401  registers the mappers

        logger.info(f"Creating schema on {self.engine.url.render_as_string(hide_password=True)}")
        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Unit of work: commit on success, roll back on any error.

        ``IntegrityError`` is re-raised as is so callers can translate
        uniqueness violations; other SQLAlchemy failures become
        ``PersistenceError``.
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except (IntegrityError, MembershipError):
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error: {e}")
            raise PersistenceError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()


_default_storage: Optional[Storage] = None


def get_storage() -> Storage:
    global _default_storage
    if _default_storage is None:
        from . import config

        _default_storage = Storage(config.DATABASE_URL, echo=config.DEBUG)
    return _default_storage
