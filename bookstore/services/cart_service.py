from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from bookstore.errors import NotFoundError
from bookstore.models import Book, Cart, CartItem
from bookstore.services.transaction_service import atomic


@dataclass(frozen=True)
class CartLine:
    cart_item_id: int
    isbn: str
    title: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    stock_qty: int


def find_cart(db: Session, user_id: int) -> Cart | None:
    return db.execute(select(Cart).where(Cart.user_id == user_id)).scalar_one_or_none()


def lock_cart(db: Session, user_id: int) -> Cart | None:
    return db.execute(
        select(Cart)
        .where(Cart.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def get_or_create_cart(db: Session, user_id: int) -> Cart:
    cart = lock_cart(db, user_id)
    if cart is None:
        cart = Cart(user_id=user_id)
        db.add(cart)
        db.flush()
    return cart


def list_cart_items(db: Session, *, cart_id: int) -> list[CartItem]:
    return db.execute(
        select(CartItem).where(CartItem.cart_id == cart_id).order_by(CartItem.cart_item_id.asc())
    ).scalars().all()


def _find_item(db: Session, *, cart_id: int, isbn: str) -> CartItem | None:
    return db.execute(
        select(CartItem).where(CartItem.cart_id == cart_id, CartItem.isbn == isbn)
    ).scalar_one_or_none()


def get_items_with_book_info(db: Session, *, user_id: int) -> list[CartLine]:
    cart = find_cart(db, user_id)
    if cart is None:
        return []
    rows = db.execute(
        select(CartItem, Book.title, Book.price, Book.stock_qty)
        .join(Book, Book.isbn == CartItem.isbn)
        .where(CartItem.cart_id == cart.cart_id)
        .order_by(CartItem.cart_item_id.asc())
    ).all()
    return [
        CartLine(
            cart_item_id=item.cart_item_id,
            isbn=item.isbn,
            title=title,
            quantity=item.quantity,
            unit_price=Decimal(price),
            line_total=Decimal(price) * item.quantity,
            stock_qty=int(stock_qty),
        )
        for item, title, price, stock_qty in rows
    ]


def add_item(db: Session, *, user_id: int, isbn: str, quantity: int) -> list[CartLine]:
    """Add ``quantity`` copies to the user's cart.

    The cart does not reserve stock; availability is only enforced at checkout.
    """
    if quantity <= 0:
        raise ValueError('Quantity must be greater than 0')
    with atomic(db):
        exists = db.execute(select(Book.isbn).where(Book.isbn == isbn)).scalar_one_or_none()
        if exists is None:
            raise NotFoundError('Book', isbn)
        cart = get_or_create_cart(db, user_id)
        item = _find_item(db, cart_id=cart.cart_id, isbn=isbn)
        if item is None:
            db.add(CartItem(cart_id=cart.cart_id, isbn=isbn, quantity=quantity))
        else:
            item.quantity += quantity
        db.flush()
        lines = get_items_with_book_info(db, user_id=user_id)
    return lines


def update_quantity(db: Session, *, user_id: int, isbn: str, quantity: int) -> list[CartLine]:
    with atomic(db):
        cart = lock_cart(db, user_id)
        item = _find_item(db, cart_id=cart.cart_id, isbn=isbn) if cart else None
        if item is None:
            raise NotFoundError('Cart item', isbn)
        if quantity <= 0:
            db.delete(item)
        else:
            item.quantity = quantity
        db.flush()
        lines = get_items_with_book_info(db, user_id=user_id)
    return lines


def remove_item(db: Session, *, user_id: int, isbn: str) -> list[CartLine]:
    with atomic(db):
        cart = lock_cart(db, user_id)
        item = _find_item(db, cart_id=cart.cart_id, isbn=isbn) if cart else None
        if item is None:
            raise NotFoundError('Cart item', isbn)
        db.delete(item)
        db.flush()
        lines = get_items_with_book_info(db, user_id=user_id)
    return lines


def clear_cart_items(db: Session, *, cart_id: int) -> None:
    db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))


def clear(db: Session, *, user_id: int) -> None:
    with atomic(db):
        cart = lock_cart(db, user_id)
        if cart is not None:
            clear_cart_items(db, cart_id=cart.cart_id)
