from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class CartItemIn(BaseModel):
    isbn: str
    quantity: int = Field(gt=0)


class CartQuantityIn(BaseModel):
    quantity: int


class CartLineOut(BaseModel):
    cart_item_id: int
    isbn: str
    title: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    stock_qty: int


class CheckoutIn(BaseModel):
    payment_method: str = 'credit_card'
    card_number: str | None = None
    expiry_date: str | None = None


class SaleLineOut(BaseModel):
    isbn: str
    quantity: int
    price_at_sale: Decimal


class SaleOut(BaseModel):
    order_no: int
    customer_id: int
    order_date: datetime
    total_amount: Decimal
    payment_method: str
    payment_card: str | None
    items: list[SaleLineOut]


class ReplenishmentOrderIn(BaseModel):
    isbn: str
    quantity_ordered: int = Field(gt=0)
    publisher_id: int | None = None
    expected_delivery_date: date | None = None


class ReplenishmentOrderOut(BaseModel):
    order_id: int
    isbn: str
    publisher_id: int | None
    admin_id: int | None
    order_date: date
    quantity_ordered: int
    status: str
    expected_delivery_date: date | None = None


class ReplenishmentOrderListOut(ReplenishmentOrderOut):
    book_title: str | None = None
    publisher_name: str | None = None


class LowStockBookOut(BaseModel):
    isbn: str
    title: str
    stock_qty: int
    threshold_qty: int
    publisher_id: int


class LowStockScanOut(BaseModel):
    matches: list[LowStockBookOut]
    created_order_ids: list[int]
    failures: dict[str, str]
