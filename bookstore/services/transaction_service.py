from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from bookstore.errors import TransientStoreFailure

logger = logging.getLogger(__name__)


def _is_transient(exc: DBAPIError) -> bool:
    return isinstance(exc, OperationalError) or bool(exc.connection_invalidated)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Run one operation as a single transaction.

    Commits when the block exits normally and rolls back on any exception.
    Lock timeouts, deadlocks and lost connections surface as
    TransientStoreFailure once the rollback has completed.
    """
    try:
        yield db
        db.commit()
    except DBAPIError as exc:
        db.rollback()
        if _is_transient(exc):
            logger.warning('Transaction aborted by the store: %s', exc.orig)
            raise TransientStoreFailure(str(exc.orig)) from exc
        raise
    except BaseException:
        db.rollback()
        raise
