from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bookstore.auth import Principal, require_role
from bookstore.db import get_db
from bookstore.models import UserType
from bookstore.schemas import CheckoutIn, SaleLineOut, SaleOut
from bookstore.services.checkout_service import (
    PaymentInfo,
    Sale,
    checkout,
    get_customer_order,
    list_customer_orders,
)

router = APIRouter(tags=['checkout'])
customer_access = require_role(UserType.CUSTOMER)
any_user_access = require_role(UserType.CUSTOMER, UserType.ADMIN)


def _sale_out(sale: Sale) -> SaleOut:
    order = sale.order
    return SaleOut(
        order_no=order.order_no,
        customer_id=order.customer_id,
        order_date=order.order_date,
        total_amount=order.total_amount,
        payment_method=order.payment_method,
        payment_card=order.payment_card,
        items=[
            SaleLineOut(isbn=line.isbn, quantity=line.quantity, price_at_sale=line.price_at_sale)
            for line in sale.lines
        ],
    )


@router.post('/checkout', response_model=SaleOut, status_code=201)
def checkout_cart(
    payload: CheckoutIn,
    principal: Principal = Depends(customer_access),
    db: Session = Depends(get_db),
):
    sale = checkout(
        db,
        user_id=principal.id,
        payment=PaymentInfo(
            card_number=payload.card_number,
            expiry_date=payload.expiry_date,
            payment_method=payload.payment_method,
        ),
    )
    return _sale_out(sale)


@router.get('/customer-orders', response_model=list[SaleOut])
def customer_orders(
    principal: Principal = Depends(customer_access),
    db: Session = Depends(get_db),
):
    return [_sale_out(sale) for sale in list_customer_orders(db, customer_id=principal.id)]


@router.get('/customer-orders/{order_no}', response_model=SaleOut)
def customer_order_detail(
    order_no: int,
    principal: Principal = Depends(any_user_access),
    db: Session = Depends(get_db),
):
    customer_id = None if principal.user_type == UserType.ADMIN else principal.id
    return _sale_out(get_customer_order(db, order_no=order_no, customer_id=customer_id))
