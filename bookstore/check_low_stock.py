from __future__ import annotations

import argparse

from bookstore.config import settings
from bookstore.db import Database
from bookstore.logging_config import configure_logging
from bookstore.services.low_stock_service import replenishment_quantity, scan_low_stock


def main() -> None:
    parser = argparse.ArgumentParser(description='Create replenishment orders for books below their stock threshold.')
    parser.add_argument(
        '--admin-id',
        type=int,
        default=None,
        help='Admin recorded on generated orders (defaults to LOW_STOCK_ADMIN_ID).',
    )
    parser.add_argument('--dry-run', action='store_true', help='List matching books without creating orders.')
    args = parser.parse_args()

    configure_logging(settings.log_level)
    database = Database().open()
    try:
        result = scan_low_stock(database.session, admin_id=args.admin_id, dry_run=args.dry_run)
    finally:
        database.close()

    for book in result.matches:
        print(
            f'{book.isbn}: {book.title} stock={book.stock_qty} threshold={book.threshold_qty} '
            f'order_qty={replenishment_quantity(book.threshold_qty)}'
        )
    print(
        f'Low stock scan complete: matched={len(result.matches)}, '
        f'created={len(result.created_order_ids)}, failed={len(result.failures)}'
    )


if __name__ == '__main__':
    main()
