from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookstore.errors import InvalidStateError, NotFoundError
from bookstore.models import Book, Publisher, ReplenishmentOrder, ReplenishmentStatus
from bookstore.services.audit_service import log_audit
from bookstore.services.stock_ledger_service import get_stock, lock_book, set_stock
from bookstore.services.transaction_service import atomic

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _lock_order(db: Session, order_id: int) -> ReplenishmentOrder:
    order = db.execute(
        select(ReplenishmentOrder)
        .where(ReplenishmentOrder.order_id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if order is None:
        raise NotFoundError('Replenishment order', order_id)
    return order


def _pending_order_id(db: Session, isbn: str) -> int | None:
    return db.execute(
        select(ReplenishmentOrder.order_id).where(
            ReplenishmentOrder.isbn == isbn,
            ReplenishmentOrder.status == ReplenishmentStatus.PENDING,
        )
    ).scalar_one_or_none()


def _is_pending_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return 'replenishment_orders_one_pending_per_isbn' in message or 'replenishment_orders.isbn' in message


def get_replenishment_order(db: Session, order_id: int) -> ReplenishmentOrder:
    order = db.execute(
        select(ReplenishmentOrder).where(ReplenishmentOrder.order_id == order_id)
    ).scalar_one_or_none()
    if order is None:
        raise NotFoundError('Replenishment order', order_id)
    return order


def list_replenishment_orders(
    db: Session,
    *,
    status: ReplenishmentStatus | None = None,
    limit: int = 100,
) -> list[dict]:
    query = (
        select(ReplenishmentOrder, Book.title, Publisher.name)
        .join(Book, Book.isbn == ReplenishmentOrder.isbn)
        .outerjoin(Publisher, Publisher.publisher_id == ReplenishmentOrder.publisher_id)
        .order_by(ReplenishmentOrder.order_date.desc(), ReplenishmentOrder.order_id.desc())
        .limit(limit)
    )
    if status is not None:
        query = query.where(ReplenishmentOrder.status == status)
    rows = db.execute(query).all()
    return [
        {
            'order_id': order.order_id,
            'isbn': order.isbn,
            'book_title': title,
            'publisher_id': order.publisher_id,
            'publisher_name': publisher_name,
            'admin_id': order.admin_id,
            'order_date': order.order_date,
            'quantity_ordered': order.quantity_ordered,
            'status': order.status.value,
            'expected_delivery_date': order.expected_delivery_date,
        }
        for order, title, publisher_name in rows
    ]


def create_replenishment_order(
    db: Session,
    *,
    isbn: str,
    quantity_ordered: int,
    admin_id: int | None,
    publisher_id: int | None = None,
    expected_delivery_date: date | None = None,
) -> ReplenishmentOrder:
    """Create a pending order for ``isbn``.

    At most one pending order may exist per isbn. The book row is locked
    while checking, and the partial unique index on pending orders catches
    anything that slips past the check.
    """
    if quantity_ordered <= 0:
        raise ValueError('Quantity ordered must be greater than zero')
    try:
        with atomic(db):
            book = lock_book(db, isbn)
            existing_id = _pending_order_id(db, isbn)
            if existing_id is not None:
                raise InvalidStateError(
                    f'Book {isbn} already has pending replenishment order {existing_id}',
                    order_id=existing_id,
                    status=ReplenishmentStatus.PENDING.value,
                )
            order = ReplenishmentOrder(
                isbn=isbn,
                publisher_id=publisher_id if publisher_id is not None else book.publisher_id,
                admin_id=admin_id,
                order_date=date.today(),
                quantity_ordered=quantity_ordered,
                status=ReplenishmentStatus.PENDING,
                expected_delivery_date=expected_delivery_date,
            )
            db.add(order)
            db.flush()
            log_audit(
                db,
                actor_user_id=admin_id,
                action='REPLENISHMENT_ORDER_CREATED',
                metadata={'order_id': order.order_id, 'isbn': isbn, 'quantity_ordered': quantity_ordered},
            )
    except IntegrityError as exc:
        if not _is_pending_conflict(exc):
            raise
        raise InvalidStateError(
            f'Book {isbn} already has a pending replenishment order',
            status=ReplenishmentStatus.PENDING.value,
        ) from exc
    return order


def confirm_replenishment_order(
    db: Session,
    *,
    order_id: int,
    actor_user_id: int | None = None,
) -> ReplenishmentOrder:
    """Confirm a pending order and restock the book by exactly ``quantity_ordered``.

    A database trigger may also restock on the status write (once, or twice
    when misconfigured). The stock observed after the write is compared to
    the expected value and corrected, so confirmation always nets
    ``+quantity_ordered``. Confirming an already confirmed order returns it
    unchanged.
    """
    with atomic(db):
        order = _lock_order(db, order_id)
        if order.status == ReplenishmentStatus.CONFIRMED:
            return order
        if order.status != ReplenishmentStatus.PENDING:
            raise InvalidStateError(
                f'Only pending orders can be confirmed (order {order_id} is {order.status.value})',
                order_id=order_id,
                status=order.status.value,
            )

        book = lock_book(db, order.isbn)
        before = book.stock_qty
        expected = before + order.quantity_ordered

        order.status = ReplenishmentStatus.CONFIRMED
        order.confirmed_at = _now()
        order.updated_at = _now()
        db.flush()

        observed = get_stock(db, order.isbn)
        if observed != expected:
            if observed != before:
                logger.warning(
                    'Reconciling stock for %s after confirming order %s: observed=%s expected=%s',
                    order.isbn,
                    order_id,
                    observed,
                    expected,
                )
            set_stock(db, order.isbn, expected)
        db.refresh(book)

        log_audit(
            db,
            actor_user_id=actor_user_id,
            action='REPLENISHMENT_ORDER_CONFIRMED',
            metadata={
                'order_id': order_id,
                'isbn': order.isbn,
                'quantity_ordered': order.quantity_ordered,
                'stock_before': before,
                'stock_after': expected,
                'stock_observed_after_status_write': observed,
            },
        )

    logger.info('Confirmed replenishment order %s: %s stock %s -> %s', order_id, order.isbn, before, expected)
    return order


def cancel_replenishment_order(
    db: Session,
    *,
    order_id: int,
    actor_user_id: int | None = None,
) -> ReplenishmentOrder:
    with atomic(db):
        order = _lock_order(db, order_id)
        if order.status != ReplenishmentStatus.PENDING:
            raise InvalidStateError(
                f'Only pending orders can be cancelled (order {order_id} is {order.status.value})',
                order_id=order_id,
                status=order.status.value,
            )
        order.status = ReplenishmentStatus.CANCELLED
        order.cancelled_at = _now()
        order.updated_at = _now()
        db.flush()
        log_audit(
            db,
            actor_user_id=actor_user_id,
            action='REPLENISHMENT_ORDER_CANCELLED',
            metadata={'order_id': order_id, 'isbn': order.isbn},
        )
    return order


def get_replenishment_count(db: Session, isbn: str) -> int:
    count = db.execute(
        select(func.count(ReplenishmentOrder.order_id)).where(ReplenishmentOrder.isbn == isbn)
    ).scalar_one()
    return int(count)
