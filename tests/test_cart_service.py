from __future__ import annotations

import unittest
from decimal import Decimal

from db_support import DatabaseTestCase

from bookstore.errors import NotFoundError
from bookstore.services import cart_service


class CartServiceTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user_id = self.add_user('reader')
        self.add_book('ISBN-A', title='Alpha', price='10.00', stock_qty=5)
        self.add_book('ISBN-B', title='Beta', price='5.00', stock_qty=1)

    def test_add_item_creates_cart_lazily(self) -> None:
        with self.database.session() as db:
            self.assertIsNone(cart_service.find_cart(db, self.user_id))
        with self.database.session() as db:
            lines = cart_service.add_item(db, user_id=self.user_id, isbn='ISBN-A', quantity=2)
        self.assertEqual(len(lines), 1)
        self.assertEqual(lines[0].title, 'Alpha')
        self.assertEqual(lines[0].quantity, 2)
        self.assertEqual(lines[0].unit_price, Decimal('10.00'))
        self.assertEqual(lines[0].line_total, Decimal('20.00'))
        self.assertEqual(lines[0].stock_qty, 5)

    def test_adding_same_book_accumulates_quantity(self) -> None:
        with self.database.session() as db:
            cart_service.add_item(db, user_id=self.user_id, isbn='ISBN-A', quantity=1)
        with self.database.session() as db:
            cart_service.add_item(db, user_id=self.user_id, isbn='ISBN-A', quantity=3)
        self.assertEqual(self.cart_quantities(self.user_id), {'ISBN-A': 4})

    def test_items_keep_insertion_order(self) -> None:
        with self.database.session() as db:
            cart_service.add_item(db, user_id=self.user_id, isbn='ISBN-B', quantity=1)
            cart_service.add_item(db, user_id=self.user_id, isbn='ISBN-A', quantity=1)
        with self.database.session() as db:
            lines = cart_service.get_items_with_book_info(db, user_id=self.user_id)
        self.assertEqual([line.isbn for line in lines], ['ISBN-B', 'ISBN-A'])

    def test_add_unknown_book_raises_not_found(self) -> None:
        with self.database.session() as db:
            with self.assertRaises(NotFoundError):
                cart_service.add_item(db, user_id=self.user_id, isbn='ISBN-MISSING', quantity=1)
        self.assertEqual(self.cart_quantities(self.user_id), {})

    def test_cart_does_not_reserve_stock(self) -> None:
        other_user = self.add_user('other reader')
        with self.database.session() as db:
            cart_service.add_item(db, user_id=self.user_id, isbn='ISBN-B', quantity=3)
        with self.database.session() as db:
            cart_service.add_item(db, user_id=other_user, isbn='ISBN-B', quantity=2)
        self.assertEqual(self.cart_quantities(self.user_id), {'ISBN-B': 3})
        self.assertEqual(self.cart_quantities(other_user), {'ISBN-B': 2})
        self.assertEqual(self.stock('ISBN-B'), 1)

    def test_update_quantity_sets_new_value(self) -> None:
        with self.database.session() as db:
            cart_service.add_item(db, user_id=self.user_id, isbn='ISBN-A', quantity=1)
        with self.database.session() as db:
            cart_service.update_quantity(db, user_id=self.user_id, isbn='ISBN-A', quantity=4)
        self.assertEqual(self.cart_quantities(self.user_id), {'ISBN-A': 4})

    def test_update_quantity_to_zero_or_less_removes_item(self) -> None:
        with self.database.session() as db:
            cart_service.add_item(db, user_id=self.user_id, isbn='ISBN-A', quantity=1)
            cart_service.add_item(db, user_id=self.user_id, isbn='ISBN-B', quantity=1)
        with self.database.session() as db:
            lines = cart_service.update_quantity(db, user_id=self.user_id, isbn='ISBN-A', quantity=0)
        self.assertEqual([line.isbn for line in lines], ['ISBN-B'])
        with self.database.session() as db:
            cart_service.update_quantity(db, user_id=self.user_id, isbn='ISBN-B', quantity=-2)
        self.assertEqual(self.cart_quantities(self.user_id), {})

    def test_remove_missing_item_raises_not_found(self) -> None:
        with self.database.session() as db:
            with self.assertRaises(NotFoundError):
                cart_service.remove_item(db, user_id=self.user_id, isbn='ISBN-A')

    def test_remove_item_and_clear(self) -> None:
        with self.database.session() as db:
            cart_service.add_item(db, user_id=self.user_id, isbn='ISBN-A', quantity=1)
            cart_service.add_item(db, user_id=self.user_id, isbn='ISBN-B', quantity=1)
        with self.database.session() as db:
            lines = cart_service.remove_item(db, user_id=self.user_id, isbn='ISBN-A')
        self.assertEqual([line.isbn for line in lines], ['ISBN-B'])
        with self.database.session() as db:
            cart_service.clear(db, user_id=self.user_id)
        self.assertEqual(self.cart_quantities(self.user_id), {})


if __name__ == '__main__':
    unittest.main()
