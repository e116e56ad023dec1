from __future__ import annotations

from collections.abc import Iterator

from fastapi import Request
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from bookstore.config import settings
from bookstore.models import Base


def _configure_sqlite(engine: Engine) -> None:
    @event.listens_for(engine, 'connect')
    def _on_connect(dbapi_connection, _connection_record) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    # SQLite has no row locks; take the database write lock when the transaction starts.
    @event.listens_for(engine, 'begin')
    def _on_begin(conn) -> None:
        conn.exec_driver_sql('BEGIN IMMEDIATE')


class Database:
    """Store handle: open at startup, pass sessions to components, close at shutdown."""

    def __init__(self, url: str | None = None, *, echo: bool | None = None) -> None:
        self.url = url or settings.database_url_normalized
        self.echo = settings.database_echo if echo is None else echo
        self.engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith('sqlite')

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    def _connect_args(self) -> dict:
        if self.is_sqlite:
            return {'timeout': settings.sqlite_busy_timeout_seconds, 'check_same_thread': False}
        if self.url.startswith('postgresql'):
            return {'options': f'-c lock_timeout={settings.lock_timeout_ms}'}
        return {}

    def open(self) -> Database:
        if self.engine is not None:
            return self
        self.engine = create_engine(
            self.url,
            echo=self.echo,
            pool_pre_ping=True,
            connect_args=self._connect_args(),
        )
        if self.is_sqlite:
            _configure_sqlite(self.engine)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        return self

    def close(self) -> None:
        if self.engine is None:
            return
        self.engine.dispose()
        self.engine = None
        self._session_factory = None

    def session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError('Database is not open')
        return self._session_factory()

    def create_schema(self) -> None:
        if self.engine is None:
            raise RuntimeError('Database is not open')
        Base.metadata.create_all(self.engine)


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
