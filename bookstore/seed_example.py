from decimal import Decimal

from sqlalchemy import select

from bookstore.db import Database
from bookstore.models import Book, Publisher, User, UserType

DEMO_BOOKS = [
    ('9780000000001', 'The Quiet Ledger', Decimal('10.00'), 5, 10),
    ('9780000000002', 'Stock and Flow', Decimal('5.00'), 25, 10),
    ('9780000000003', 'Last Copy Standing', Decimal('18.50'), 1, 4),
]


def seed(database: Database) -> None:
    with database.session() as db:
        admin = db.execute(select(User).where(User.username == 'admin')).scalar_one_or_none()
        if not admin:
            db.add(User(username='admin', user_type=UserType.ADMIN))

        customer = db.execute(select(User).where(User.username == 'john_doe')).scalar_one_or_none()
        if not customer:
            db.add(User(username='john_doe', user_type=UserType.CUSTOMER))

        publisher = db.execute(select(Publisher).where(Publisher.name == 'Demo Press')).scalar_one_or_none()
        if not publisher:
            publisher = Publisher(name='Demo Press')
            db.add(publisher)
            db.flush()

        for isbn, title, price, stock_qty, threshold_qty in DEMO_BOOKS:
            book = db.get(Book, isbn)
            if book:
                continue
            db.add(
                Book(
                    isbn=isbn,
                    title=title,
                    price=price,
                    stock_qty=stock_qty,
                    threshold_qty=threshold_qty,
                    publisher_id=publisher.publisher_id,
                )
            )

        db.commit()


if __name__ == '__main__':
    database = Database().open()
    try:
        database.create_schema()
        seed(database)
    finally:
        database.close()
    print('Seed data inserted/verified.')
