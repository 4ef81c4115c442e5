"""SQLAlchemy implementation of the metadata store and user directory."""

import json
import logging
from contextlib import contextmanager
from typing import Any, Callable, Generator, List, Optional

from sqlalchemy import Column, Integer, String, Text, UniqueConstraint, \
    create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.orm.session import Session

from . import Updater
from .exceptions import PersistenceFailure
from .. import domain

logger = logging.getLogger(__name__)

Base = declarative_base()


class DBUser(Base):  # type: ignore
    """
    User directory table.

    +--------------+--------------+------+-----+---------+----------------+
    | Field        | Type         | Null | Key | Default | Extra          |
    +--------------+--------------+------+-----+---------+----------------+
    | user_id      | int          | NO   | PRI | NULL    | auto_increment |
    | user_login   | varchar(60)  | NO   | UNI |         |                |
    | user_email   | varchar(100) | NO   | MUL |         |                |
    | display_name | varchar(250) | NO   |     |         |                |
    +--------------+--------------+------+-----+---------+----------------+
    """

    __tablename__ = 'users'

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    user_login = Column(String(60), nullable=False, unique=True,
                        server_default=text("''"))
    user_email = Column(String(100), nullable=False, index=True,
                        server_default=text("''"))
    display_name = Column(String(250), nullable=False,
                          server_default=text("''"))


class DBUserMeta(Base):  # type: ignore
    """
    Per-user key/value metadata. Values are JSON-encoded.

    +------------+--------------+------+-----+---------+----------------+
    | Field      | Type         | Null | Key | Default | Extra          |
    +------------+--------------+------+-----+---------+----------------+
    | umeta_id   | int          | NO   | PRI | NULL    | auto_increment |
    | user_id    | int          | NO   | MUL | 0       |                |
    | meta_key   | varchar(255) | NO   | MUL |         |                |
    | meta_value | longtext     | YES  |     | NULL    |                |
    +------------+--------------+------+-----+---------+----------------+

    A user has at most one row per key.
    """

    __tablename__ = 'user_meta'
    __table_args__ = (
        UniqueConstraint('user_id', 'meta_key', name='user_meta_key'),
    )

    umeta_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True,
                     server_default=text("'0'"))
    meta_key = Column(String(255), nullable=False, index=True,
                      server_default=text("''"))
    meta_value = Column(Text)


class SQLMetadataStore(object):
    """Stores metadata rows in a relational database."""

    def __init__(self, engine: Engine, max_conflict_retries: int = 5) -> None:
        self.engine = engine
        self._max_conflict_retries = max_conflict_retries
        self._session_factory = sessionmaker(bind=engine)

    @classmethod
    def from_uri(cls, uri: str, create: bool = True) -> 'SQLMetadataStore':
        """Create a store (and, by default, its tables) from a DB URI."""
        store = cls(create_engine(uri))
        if create:
            store.create_all()
        return store

    def create_all(self) -> None:
        """Create all tables in the database."""
        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        """Drop all tables in the database."""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """Context manager for database transaction."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            logger.error('Commit failed, rolling back: %s', str(e))
            session.rollback()
            raise PersistenceFailure(f'Database error: {e}') from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _row(self, session: Session, user_id: int, key: str,
             lock: bool = False) -> Optional[DBUserMeta]:
        query = session.query(DBUserMeta) \
            .filter(DBUserMeta.user_id == user_id) \
            .filter(DBUserMeta.meta_key == key)
        if lock:
            query = query.with_for_update()
        return query.first()

    def get(self, user_id: int, key: str) -> Optional[Any]:
        with self.transaction() as session:
            row = self._row(session, user_id, key)
            if row is None or row.meta_value is None:
                return None
            return json.loads(row.meta_value)

    def set(self, user_id: int, key: str, value: Any) -> None:
        def _set(session: Session) -> None:
            self._write(session, self._row(session, user_id, key),
                        user_id, key, value)

        self._retry_on_conflict(user_id, key, _set)

    def delete(self, user_id: int, key: str) -> None:
        with self.transaction() as session:
            session.query(DBUserMeta) \
                .filter(DBUserMeta.user_id == user_id) \
                .filter(DBUserMeta.meta_key == key) \
                .delete()

    def update(self, user_id: int, key: str, fn: Updater) -> Optional[Any]:
        """
        Read-modify-write under a row lock (where the dialect has one).

        A missing row cannot be locked, so two first writes may race to
        insert it. The unique key rejects the second insert, and that update
        is run again against the row that won.
        """
        def _update(session: Session) -> Optional[Any]:
            row = self._row(session, user_id, key, lock=True)
            current = None
            if row is not None and row.meta_value is not None:
                current = json.loads(row.meta_value)
            value = fn(current)
            if value is None:
                if row is not None:
                    session.delete(row)
            else:
                self._write(session, row, user_id, key, value)
            return value

        return self._retry_on_conflict(user_id, key, _update)

    def _retry_on_conflict(self, user_id: int, key: str,
                           func: Callable[[Session], Any]) -> Any:
        """Run ``func`` in a transaction, again if the insert loses a race."""
        for _ in range(self._max_conflict_retries):
            try:
                with self.transaction() as session:
                    return func(session)
            except PersistenceFailure as e:
                if not isinstance(e.__cause__, IntegrityError):
                    raise
                logger.debug('Concurrent insert of %s for %s; retrying',
                             key, user_id)
        raise PersistenceFailure(f'Gave up writing {key} for {user_id}')

    def users_with(self, key: str) -> List[int]:
        with self.transaction() as session:
            rows = session.query(DBUserMeta.user_id) \
                .filter(DBUserMeta.meta_key == key) \
                .distinct() \
                .all()
            return sorted(row.user_id for row in rows)

    def _write(self, session: Session, row: Optional[DBUserMeta],
               user_id: int, key: str, value: Any) -> None:
        if row is None:
            row = DBUserMeta(user_id=user_id, meta_key=key)
            session.add(row)
        row.meta_value = json.dumps(value)


class SQLUserDirectory(object):
    """Reads core user fields from the ``users`` table."""

    def __init__(self, store: SQLMetadataStore) -> None:
        self._store = store

    def get_user(self, user_id: int) -> Optional[domain.User]:
        """Get a :class:`domain.User` by ID, or ``None``."""
        with self._store.transaction() as session:
            db_user = session.get(DBUser, user_id)
            if db_user is None:
                return None
            return domain.User(
                user_id=db_user.user_id,
                email=db_user.user_email,
                username=db_user.user_login,
                display_name=db_user.display_name
            )
