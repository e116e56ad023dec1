from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from bookstore.errors import EmptyCartError, InsufficientStockError, NotFoundError
from bookstore.models import CustomerOrder, OrderLine
from bookstore.services.audit_service import log_audit
from bookstore.services.cart_service import clear_cart_items, list_cart_items, lock_cart
from bookstore.services.stock_ledger_service import adjust_stock, lock_books
from bookstore.services.transaction_service import atomic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentInfo:
    card_number: str | None = None
    expiry_date: str | None = None
    payment_method: str = 'credit_card'


@dataclass(frozen=True)
class SaleLine:
    isbn: str
    quantity: int
    price_at_sale: Decimal


@dataclass(frozen=True)
class Sale:
    order: CustomerOrder
    lines: list[SaleLine]


def mask_card_number(card_number: str | None) -> str | None:
    digits = ''.join(ch for ch in (card_number or '') if ch.isdigit())
    if not digits:
        return None
    return f'**** {digits[-4:]}'


def checkout(db: Session, *, user_id: int, payment: PaymentInfo) -> Sale:
    """Turn the user's cart into a sale in one transaction.

    The cart row is locked first and the book rows second, so two checkouts
    of the same cart run one after the other. Every cart line is checked
    against locked stock before anything is written. The first short line
    aborts the whole checkout; on any failure the cart, the stock and the
    order tables are left untouched.
    """
    with atomic(db):
        cart = lock_cart(db, user_id)
        items = list_cart_items(db, cart_id=cart.cart_id) if cart else []
        if not items:
            raise EmptyCartError(user_id)

        books = lock_books(db, [item.isbn for item in items])
        total = Decimal('0.00')
        sale_lines: list[SaleLine] = []
        for item in items:
            book = books.get(item.isbn)
            if book is None:
                raise NotFoundError('Book', item.isbn)
            if book.stock_qty < item.quantity:
                raise InsufficientStockError(
                    item.isbn, available=book.stock_qty, requested=item.quantity, title=book.title
                )
            price = Decimal(book.price)
            total += price * item.quantity
            sale_lines.append(SaleLine(isbn=item.isbn, quantity=item.quantity, price_at_sale=price))

        order = CustomerOrder(
            customer_id=user_id,
            total_amount=total,
            payment_method=payment.payment_method or 'credit_card',
            payment_card=mask_card_number(payment.card_number),
            card_expiry=payment.expiry_date,
        )
        db.add(order)
        db.flush()
        for line in sale_lines:
            db.add(
                OrderLine(
                    order_no=order.order_no,
                    isbn=line.isbn,
                    quantity=line.quantity,
                    price_at_sale=line.price_at_sale,
                )
            )
        db.flush()

        for line in sale_lines:
            adjust_stock(db, line.isbn, -line.quantity)

        clear_cart_items(db, cart_id=cart.cart_id)
        log_audit(
            db,
            actor_user_id=user_id,
            action='CHECKOUT_COMPLETED',
            metadata={
                'order_no': order.order_no,
                'total_amount': str(total),
                'items': [{'isbn': line.isbn, 'quantity': line.quantity} for line in sale_lines],
            },
        )

    logger.info('Checkout completed: order_no=%s user_id=%s total=%s', order.order_no, user_id, total)
    return Sale(order=order, lines=sale_lines)


def _load_lines(db: Session, order_no: int) -> list[SaleLine]:
    rows = db.execute(
        select(OrderLine).where(OrderLine.order_no == order_no).order_by(OrderLine.line_id.asc())
    ).scalars().all()
    return [SaleLine(isbn=row.isbn, quantity=row.quantity, price_at_sale=Decimal(row.price_at_sale)) for row in rows]


def get_customer_order(db: Session, *, order_no: int, customer_id: int | None = None) -> Sale:
    query = select(CustomerOrder).where(CustomerOrder.order_no == order_no)
    if customer_id is not None:
        query = query.where(CustomerOrder.customer_id == customer_id)
    order = db.execute(query).scalar_one_or_none()
    if order is None:
        raise NotFoundError('Order', order_no)
    return Sale(order=order, lines=_load_lines(db, order.order_no))


def list_customer_orders(db: Session, *, customer_id: int, limit: int = 100) -> list[Sale]:
    orders = db.execute(
        select(CustomerOrder)
        .where(CustomerOrder.customer_id == customer_id)
        .order_by(CustomerOrder.order_date.desc(), CustomerOrder.order_no.desc())
        .limit(limit)
    ).scalars().all()
    return [Sale(order=order, lines=_load_lines(db, order.order_no)) for order in orders]
