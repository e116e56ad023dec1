from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from bookstore.auth import Principal, require_role
from bookstore.db import get_db
from bookstore.models import ReplenishmentOrder, ReplenishmentStatus, UserType
from bookstore.schemas import (
    LowStockBookOut,
    LowStockScanOut,
    ReplenishmentOrderIn,
    ReplenishmentOrderListOut,
    ReplenishmentOrderOut,
)
from bookstore.services.low_stock_service import scan_low_stock
from bookstore.services.replenishment_order_service import (
    cancel_replenishment_order,
    confirm_replenishment_order,
    create_replenishment_order,
    get_replenishment_count,
    get_replenishment_order,
    list_replenishment_orders,
)
from bookstore.services.stock_ledger_service import get_stock

router = APIRouter(tags=['replenishment'])
admin_access = require_role(UserType.ADMIN)


def _order_out(order: ReplenishmentOrder) -> ReplenishmentOrderOut:
    return ReplenishmentOrderOut(
        order_id=order.order_id,
        isbn=order.isbn,
        publisher_id=order.publisher_id,
        admin_id=order.admin_id,
        order_date=order.order_date,
        quantity_ordered=order.quantity_ordered,
        status=order.status.value,
        expected_delivery_date=order.expected_delivery_date,
    )


@router.get('/orders', response_model=list[ReplenishmentOrderListOut])
def list_orders(
    status: str | None = None,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    try:
        status_filter = ReplenishmentStatus(status.upper()) if status else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail='Invalid status filter') from exc
    return list_replenishment_orders(db, status=status_filter)


@router.get('/orders/{order_id}', response_model=ReplenishmentOrderOut)
def order_detail(
    order_id: int,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    return _order_out(get_replenishment_order(db, order_id))


@router.post('/orders', response_model=ReplenishmentOrderOut, status_code=201)
def create_order(
    payload: ReplenishmentOrderIn,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    order = create_replenishment_order(
        db,
        isbn=payload.isbn,
        quantity_ordered=payload.quantity_ordered,
        admin_id=principal.id,
        publisher_id=payload.publisher_id,
        expected_delivery_date=payload.expected_delivery_date,
    )
    return _order_out(order)


@router.post('/orders/{order_id}/confirm', response_model=ReplenishmentOrderOut)
def confirm_order(
    order_id: int,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    return _order_out(confirm_replenishment_order(db, order_id=order_id, actor_user_id=principal.id))


@router.post('/orders/{order_id}/cancel', response_model=ReplenishmentOrderOut)
def cancel_order(
    order_id: int,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    return _order_out(cancel_replenishment_order(db, order_id=order_id, actor_user_id=principal.id))


@router.post('/orders/low-stock-scan', response_model=LowStockScanOut)
def low_stock_scan(
    request: Request,
    principal: Principal = Depends(admin_access),
):
    result = scan_low_stock(request.app.state.database.session, admin_id=principal.id)
    return LowStockScanOut(
        matches=[LowStockBookOut(**asdict(book)) for book in result.matches],
        created_order_ids=result.created_order_ids,
        failures=result.failures,
    )


@router.get('/books/{isbn}/stock')
def book_stock(
    isbn: str,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    return {'isbn': isbn, 'stock_qty': get_stock(db, isbn)}


@router.get('/books/{isbn}/replenishment-count')
def replenishment_count(
    isbn: str,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    return {'isbn': isbn, 'count': get_replenishment_count(db, isbn)}
