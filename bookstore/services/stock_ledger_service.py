from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bookstore.errors import InsufficientStockError, NotFoundError
from bookstore.models import Book


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def get_stock(db: Session, isbn: str) -> int:
    # Column select skips the identity map, so changes made by triggers are visible.
    qty = db.execute(select(Book.stock_qty).where(Book.isbn == isbn)).scalar_one_or_none()
    if qty is None:
        raise NotFoundError('Book', isbn)
    return int(qty)


def lock_books(db: Session, isbns: Iterable[str]) -> dict[str, Book]:
    """Lock the rows for ``isbns`` for the rest of the caller's transaction.

    Rows are locked in ascending isbn order so concurrent callers touching
    overlapping sets of books cannot deadlock. Unknown isbns are simply
    absent from the result.
    """
    wanted = sorted(set(isbns))
    if not wanted:
        return {}
    rows = db.execute(
        select(Book)
        .where(Book.isbn.in_(wanted))
        .order_by(Book.isbn.asc())
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars().all()
    return {row.isbn: row for row in rows}


def lock_book(db: Session, isbn: str) -> Book:
    book = lock_books(db, [isbn]).get(isbn)
    if book is None:
        raise NotFoundError('Book', isbn)
    return book


def adjust_stock(db: Session, isbn: str, delta: int) -> int:
    """Apply ``delta`` to the book's stock and return the new quantity.

    Runs inside the caller's transaction. A change that would leave stock
    negative raises InsufficientStockError and applies nothing.
    """
    book = lock_book(db, isbn)
    new_qty = book.stock_qty + delta
    if new_qty < 0:
        raise InsufficientStockError(isbn, available=book.stock_qty, requested=-delta, title=book.title)
    book.stock_qty = new_qty
    book.updated_at = _now()
    db.flush()
    return new_qty


def set_stock(db: Session, isbn: str, qty: int) -> int:
    if qty < 0:
        raise ValueError('Stock quantity cannot be negative')
    lock_book(db, isbn)
    db.execute(
        update(Book)
        .where(Book.isbn == isbn)
        .values(stock_qty=qty, updated_at=_now())
        .execution_options(synchronize_session='fetch')
    )
    return qty
