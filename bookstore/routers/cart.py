from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bookstore.auth import Principal, require_role
from bookstore.db import get_db
from bookstore.models import UserType
from bookstore.schemas import CartItemIn, CartLineOut, CartQuantityIn
from bookstore.services import cart_service

router = APIRouter(prefix='/cart', tags=['cart'])
customer_access = require_role(UserType.CUSTOMER)


def _lines_out(lines) -> list[CartLineOut]:
    return [CartLineOut(**asdict(line)) for line in lines]


@router.get('', response_model=list[CartLineOut])
def get_cart(
    principal: Principal = Depends(customer_access),
    db: Session = Depends(get_db),
):
    return _lines_out(cart_service.get_items_with_book_info(db, user_id=principal.id))


@router.post('/items', response_model=list[CartLineOut])
def add_to_cart(
    payload: CartItemIn,
    principal: Principal = Depends(customer_access),
    db: Session = Depends(get_db),
):
    lines = cart_service.add_item(db, user_id=principal.id, isbn=payload.isbn, quantity=payload.quantity)
    return _lines_out(lines)


@router.patch('/items/{isbn}', response_model=list[CartLineOut])
def update_cart_item(
    isbn: str,
    payload: CartQuantityIn,
    principal: Principal = Depends(customer_access),
    db: Session = Depends(get_db),
):
    lines = cart_service.update_quantity(db, user_id=principal.id, isbn=isbn, quantity=payload.quantity)
    return _lines_out(lines)


@router.delete('/items/{isbn}', response_model=list[CartLineOut])
def remove_from_cart(
    isbn: str,
    principal: Principal = Depends(customer_access),
    db: Session = Depends(get_db),
):
    return _lines_out(cart_service.remove_item(db, user_id=principal.id, isbn=isbn))


@router.delete('', status_code=204)
def clear_cart(
    principal: Principal = Depends(customer_access),
    db: Session = Depends(get_db),
):
    cart_service.clear(db, user_id=principal.id)
