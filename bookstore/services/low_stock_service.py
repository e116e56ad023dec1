from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from bookstore.config import settings
from bookstore.models import Book, ReplenishmentOrder, ReplenishmentStatus
from bookstore.services.replenishment_order_service import create_replenishment_order

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


@dataclass(frozen=True)
class LowStockBook:
    isbn: str
    title: str
    stock_qty: int
    threshold_qty: int
    publisher_id: int


@dataclass
class LowStockScanResult:
    matches: list[LowStockBook]
    created_order_ids: list[int] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)


def replenishment_quantity(threshold_qty: int, *, minimum: int | None = None, multiplier: int | None = None) -> int:
    floor = settings.low_stock_min_order_qty if minimum is None else minimum
    factor = settings.low_stock_threshold_multiplier if multiplier is None else multiplier
    return max(floor, threshold_qty * factor)


def _low_stock_query() -> Select:
    pending_order = (
        select(ReplenishmentOrder.order_id)
        .where(
            ReplenishmentOrder.isbn == Book.isbn,
            ReplenishmentOrder.status == ReplenishmentStatus.PENDING,
        )
        .exists()
    )
    return (
        select(Book.isbn, Book.title, Book.stock_qty, Book.threshold_qty, Book.publisher_id)
        .where(
            Book.stock_qty < Book.threshold_qty,
            Book.threshold_qty > 0,
            Book.publisher_id.is_not(None),
            ~pending_order,
        )
        .order_by(Book.isbn.asc())
    )


def find_low_stock_books(db: Session) -> list[LowStockBook]:
    rows = db.execute(_low_stock_query()).all()
    return [
        LowStockBook(
            isbn=row.isbn,
            title=row.title,
            stock_qty=int(row.stock_qty),
            threshold_qty=int(row.threshold_qty),
            publisher_id=int(row.publisher_id),
        )
        for row in rows
    ]


def scan_low_stock(
    session_factory: SessionFactory,
    *,
    admin_id: int | None = None,
    dry_run: bool = False,
) -> LowStockScanResult:
    """
    Create a pending replenishment order for every book below its threshold.
    Each order is written in its own short transaction; a failure on one book
    is logged and recorded, and the scan moves on to the next.
    """
    actor_id = settings.low_stock_admin_id if admin_id is None else admin_id
    with session_factory() as db:
        matches = find_low_stock_books(db)
    result = LowStockScanResult(matches=matches)
    if dry_run:
        return result

    for book in matches:
        quantity = replenishment_quantity(book.threshold_qty)
        try:
            with session_factory() as db:
                order = create_replenishment_order(
                    db,
                    isbn=book.isbn,
                    quantity_ordered=quantity,
                    admin_id=actor_id,
                    publisher_id=book.publisher_id,
                )
                order_id = order.order_id
        except Exception as exc:
            logger.error('Could not create replenishment order for %s: %s', book.isbn, exc)
            result.failures[book.isbn] = str(exc)
            continue
        logger.info('Created replenishment order %s for %s (%s): quantity=%s', order_id, book.isbn, book.title, quantity)
        result.created_order_ids.append(order_id)
    return result
