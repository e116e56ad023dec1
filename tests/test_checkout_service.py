from __future__ import annotations

import threading
import unittest
from decimal import Decimal
from unittest.mock import patch

from db_support import DatabaseTestCase

from bookstore.errors import EmptyCartError, InsufficientStockError, NotFoundError
from bookstore.models import Book
from bookstore.services import cart_service
from bookstore.services.cart_service import lock_cart
from bookstore.services.checkout_service import (
    PaymentInfo,
    checkout,
    get_customer_order,
    list_customer_orders,
    mask_card_number,
)
from bookstore.services.stock_ledger_service import lock_books

PAYMENT = PaymentInfo(card_number='4111 1111 1111 1234', expiry_date='12/30')


class CheckoutServiceTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user_id = self.add_user('reader')
        self.add_book('ISBN-A', title='Alpha', price='10.00', stock_qty=5)
        self.add_book('ISBN-B', title='Beta', price='5.00', stock_qty=5)

    def _add_to_cart(self, isbn: str, quantity: int, user_id: int | None = None) -> None:
        with self.database.session() as db:
            cart_service.add_item(db, user_id=user_id or self.user_id, isbn=isbn, quantity=quantity)

    def _checkout(self, user_id: int | None = None):
        with self.database.session() as db:
            return checkout(db, user_id=user_id or self.user_id, payment=PAYMENT)

    def test_checkout_records_sale_and_decrements_stock(self) -> None:
        self._add_to_cart('ISBN-A', 2)
        self._add_to_cart('ISBN-B', 1)

        sale = self._checkout()

        self.assertEqual(sale.order.total_amount, Decimal('25.00'))
        self.assertEqual(sale.order.customer_id, self.user_id)
        self.assertEqual(
            [(line.isbn, line.quantity, line.price_at_sale) for line in sale.lines],
            [('ISBN-A', 2, Decimal('10.00')), ('ISBN-B', 1, Decimal('5.00'))],
        )
        self.assertEqual(self.stock('ISBN-A'), 3)
        self.assertEqual(self.stock('ISBN-B'), 4)
        self.assertEqual(self.cart_quantities(self.user_id), {})
        self.assertEqual(self.customer_order_count(), 1)

    def test_price_at_sale_survives_later_price_change(self) -> None:
        self._add_to_cart('ISBN-A', 2)
        sale = self._checkout()

        self.set_price('ISBN-A', '99.00')

        with self.database.session() as db:
            stored = get_customer_order(db, order_no=sale.order.order_no)
        self.assertEqual(stored.lines[0].price_at_sale, Decimal('10.00'))
        self.assertEqual(Decimal(stored.order.total_amount), Decimal('20.00'))

    def test_checkout_of_exactly_available_stock_leaves_zero(self) -> None:
        self._add_to_cart('ISBN-A', 5)
        self._checkout()
        self.assertEqual(self.stock('ISBN-A'), 0)

    def test_checkout_one_over_stock_changes_nothing(self) -> None:
        self._add_to_cart('ISBN-A', 6)

        with self.assertRaises(InsufficientStockError) as ctx:
            self._checkout()

        self.assertEqual(ctx.exception.isbn, 'ISBN-A')
        self.assertEqual(ctx.exception.available, 5)
        self.assertEqual(ctx.exception.requested, 6)
        self.assertIn('Alpha', str(ctx.exception))
        self.assertEqual(self.stock('ISBN-A'), 5)
        self.assertEqual(self.cart_quantities(self.user_id), {'ISBN-A': 6})
        self.assertEqual(self.customer_order_count(), 0)

    def test_one_short_line_aborts_whole_cart(self) -> None:
        self._add_to_cart('ISBN-A', 1)
        self._add_to_cart('ISBN-B', 7)

        with self.assertRaises(InsufficientStockError) as ctx:
            self._checkout()

        self.assertEqual(ctx.exception.isbn, 'ISBN-B')
        self.assertEqual(self.stock('ISBN-A'), 5)
        self.assertEqual(self.stock('ISBN-B'), 5)
        self.assertEqual(self.cart_quantities(self.user_id), {'ISBN-A': 1, 'ISBN-B': 7})
        self.assertEqual(self.customer_order_count(), 0)

    def test_empty_cart_is_rejected(self) -> None:
        with self.assertRaises(EmptyCartError):
            self._checkout()

        self._add_to_cart('ISBN-A', 1)
        with self.database.session() as db:
            cart_service.clear(db, user_id=self.user_id)
        with self.assertRaises(EmptyCartError):
            self._checkout()
        self.assertEqual(self.customer_order_count(), 0)

    def test_deleting_a_book_drops_it_from_carts(self) -> None:
        self._add_to_cart('ISBN-B', 1)
        self._add_to_cart('ISBN-A', 1)
        with self.database.session() as db:
            db.delete(db.get(Book, 'ISBN-A'))
            db.commit()

        self.assertEqual(self.cart_quantities(self.user_id), {'ISBN-B': 1})
        sale = self._checkout()
        self.assertEqual([line.isbn for line in sale.lines], ['ISBN-B'])

    def test_book_deleted_between_cart_read_and_stock_lock_raises_not_found(self) -> None:
        self._add_to_cart('ISBN-B', 1)
        self._add_to_cart('ISBN-A', 1)

        def lock_without_a(db, isbns):
            books = lock_books(db, isbns)
            books.pop('ISBN-A', None)
            return books

        with patch('bookstore.services.checkout_service.lock_books', side_effect=lock_without_a):
            with self.assertRaises(NotFoundError) as ctx:
                self._checkout()

        self.assertEqual(ctx.exception.key, 'ISBN-A')
        self.assertEqual(self.stock('ISBN-B'), 5)
        self.assertEqual(self.cart_quantities(self.user_id), {'ISBN-B': 1, 'ISBN-A': 1})
        self.assertEqual(self.customer_order_count(), 0)

    def test_card_number_is_stored_masked(self) -> None:
        self._add_to_cart('ISBN-A', 1)
        sale = self._checkout()

        self.assertEqual(sale.order.payment_card, '**** 1234')
        self.assertEqual(sale.order.card_expiry, '12/30')
        self.assertEqual(sale.order.payment_method, 'credit_card')
        self.assertIsNone(mask_card_number(''))
        self.assertIsNone(mask_card_number(None))

    def test_customers_only_see_their_own_orders(self) -> None:
        other_user = self.add_user('other reader')
        self._add_to_cart('ISBN-A', 1)
        mine = self._checkout()
        self._add_to_cart('ISBN-B', 2, user_id=other_user)
        theirs = self._checkout(user_id=other_user)

        with self.database.session() as db:
            orders = list_customer_orders(db, customer_id=self.user_id)
        self.assertEqual([sale.order.order_no for sale in orders], [mine.order.order_no])

        with self.database.session() as db:
            with self.assertRaises(NotFoundError):
                get_customer_order(db, order_no=theirs.order.order_no, customer_id=self.user_id)

    def test_concurrent_checkouts_of_last_unit(self) -> None:
        self.add_book('ISBN-LAST', title='Last Copy', price='12.00', stock_qty=1)
        buyers = [self.add_user('first buyer'), self.add_user('second buyer')]
        for buyer in buyers:
            self._add_to_cart('ISBN-LAST', 1, user_id=buyer)

        barrier = threading.Barrier(len(buyers))
        outcomes: list[str] = []
        lock = threading.Lock()

        def buy(user_id: int) -> None:
            barrier.wait()
            try:
                self._checkout(user_id=user_id)
                outcome = 'ok'
            except InsufficientStockError:
                outcome = 'short'
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=buy, args=(buyer,)) for buyer in buyers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        self.assertEqual(sorted(outcomes), ['ok', 'short'])
        self.assertEqual(self.stock('ISBN-LAST'), 0)
        self.assertEqual(self.customer_order_count(), 1)

    def test_same_cart_checked_out_twice_at_once_sells_once(self) -> None:
        self._add_to_cart('ISBN-A', 1)

        barrier = threading.Barrier(2)
        outcomes: list[str] = []
        lock = threading.Lock()

        def buy() -> None:
            barrier.wait()
            try:
                self._checkout()
                outcome = 'sale'
            except EmptyCartError:
                outcome = 'empty'
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=buy) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        self.assertEqual(sorted(outcomes), ['empty', 'sale'])
        self.assertEqual(self.stock('ISBN-A'), 4)
        self.assertEqual(self.customer_order_count(), 1)

    def test_checkout_locks_cart_before_books(self) -> None:
        self._add_to_cart('ISBN-A', 1)
        calls: list[str] = []

        def record(name, func):
            def wrapper(*args, **kwargs):
                calls.append(name)
                return func(*args, **kwargs)

            return wrapper

        with patch('bookstore.services.checkout_service.lock_cart', side_effect=record('cart', lock_cart)), patch(
            'bookstore.services.checkout_service.lock_books', side_effect=record('books', lock_books)
        ):
            self._checkout()

        self.assertEqual(calls, ['cart', 'books'])


if __name__ == '__main__':
    unittest.main()
