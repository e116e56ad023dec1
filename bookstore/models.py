from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from bookstore.config import settings

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
Identifier = BigInteger().with_variant(Integer, 'sqlite')


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Base(DeclarativeBase):
    pass


class UserType(str, Enum):
    ADMIN = 'ADMIN'
    CUSTOMER = 'CUSTOMER'


class ReplenishmentStatus(str, Enum):
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    CANCELLED = 'CANCELLED'


class Publisher(Base):
    __tablename__ = 'publishers'

    publisher_id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class User(Base):
    __tablename__ = 'users'

    user_id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    user_type: Mapped[UserType] = mapped_column(
        SQLEnum(UserType, name='user_type'), nullable=False, default=UserType.CUSTOMER, server_default='CUSTOMER'
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Book(Base):
    __tablename__ = 'books'
    __table_args__ = (
        CheckConstraint('price > 0', name='books_price_positive'),
        CheckConstraint('stock_qty >= 0', name='books_stock_qty_non_negative'),
        CheckConstraint('threshold_qty >= 0', name='books_threshold_qty_non_negative'),
    )

    isbn: Mapped[str] = mapped_column(String(20), primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    publication_year: Mapped[int | None] = mapped_column(Integer)
    stock_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    threshold_qty: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=lambda: settings.default_threshold_qty,
        server_default=str(settings.default_threshold_qty),
    )
    publisher_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey('publishers.publisher_id', ondelete='SET NULL')
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ReplenishmentOrder(Base):
    __tablename__ = 'replenishment_orders'
    __table_args__ = (
        CheckConstraint('quantity_ordered > 0', name='replenishment_orders_quantity_positive'),
        Index(
            'replenishment_orders_one_pending_per_isbn',
            'isbn',
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

    order_id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    isbn: Mapped[str] = mapped_column(String(20), ForeignKey('books.isbn'), nullable=False)
    publisher_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('publishers.publisher_id'))
    admin_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.user_id'))
    order_date: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)
    quantity_ordered: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ReplenishmentStatus] = mapped_column(
        SQLEnum(ReplenishmentStatus, name='replenishment_status'),
        nullable=False,
        default=ReplenishmentStatus.PENDING,
        server_default='PENDING',
    )
    expected_delivery_date: Mapped[date | None] = mapped_column(Date)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Cart(Base):
    __tablename__ = 'carts'

    cart_id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.user_id', ondelete='CASCADE'), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CartItem(Base):
    __tablename__ = 'cart_items'
    __table_args__ = (
        UniqueConstraint('cart_id', 'isbn', name='cart_items_cart_isbn_uniq'),
        CheckConstraint('quantity > 0', name='cart_items_quantity_positive'),
    )

    cart_item_id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    cart_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('carts.cart_id', ondelete='CASCADE'), nullable=False)
    isbn: Mapped[str] = mapped_column(String(20), ForeignKey('books.isbn', ondelete='CASCADE'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CustomerOrder(Base):
    __tablename__ = 'customer_orders'

    order_no: Mapped[int] = mapped_column(Identifier, primary_key=True)
    customer_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.user_id'), nullable=False)
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(Text, nullable=False, default='credit_card', server_default='credit_card')
    payment_card: Mapped[str | None] = mapped_column(Text)
    card_expiry: Mapped[str | None] = mapped_column(Text)


class OrderLine(Base):
    __tablename__ = 'order_lines'
    __table_args__ = (CheckConstraint('quantity > 0', name='order_lines_quantity_positive'),)

    line_id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    order_no: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('customer_orders.order_no', ondelete='CASCADE'), nullable=False
    )
    isbn: Mapped[str] = mapped_column(String(20), ForeignKey('books.isbn'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_at_sale: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(Identifier, primary_key=True)
    actor_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.user_id'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict, server_default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
