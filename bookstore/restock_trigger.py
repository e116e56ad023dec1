"""
Optional database trigger that restocks a book when its replenishment order
is confirmed.

The application already applies the restock itself when confirming an order
and reconciles against whatever this trigger did, so installing it is only
needed for databases shared with legacy writers that confirm orders directly
in SQL. It is not installed by default.
"""
from __future__ import annotations

import argparse

from sqlalchemy import Engine

from bookstore.config import settings
from bookstore.db import Database
from bookstore.logging_config import configure_logging

TRIGGER_NAME = 'trg_replenishment_confirm_restock'
FUNCTION_NAME = 'replenishment_confirm_restock'


def _postgresql_install(name: str) -> list[str]:
    return [
        f"""
        CREATE OR REPLACE FUNCTION {FUNCTION_NAME}() RETURNS trigger AS $$
        BEGIN
            IF NEW.status = 'CONFIRMED' AND OLD.status <> 'CONFIRMED' THEN
                UPDATE books SET stock_qty = stock_qty + NEW.quantity_ordered WHERE isbn = NEW.isbn;
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """,
        f'DROP TRIGGER IF EXISTS {name} ON replenishment_orders',
        f"""
        CREATE TRIGGER {name}
        AFTER UPDATE OF status ON replenishment_orders
        FOR EACH ROW EXECUTE FUNCTION {FUNCTION_NAME}()
        """,
    ]


def _sqlite_install(name: str) -> list[str]:
    return [
        f'DROP TRIGGER IF EXISTS {name}',
        f"""
        CREATE TRIGGER {name}
        AFTER UPDATE OF status ON replenishment_orders
        WHEN NEW.status = 'CONFIRMED' AND OLD.status <> 'CONFIRMED'
        BEGIN
            UPDATE books SET stock_qty = stock_qty + NEW.quantity_ordered WHERE isbn = NEW.isbn;
        END
        """,
    ]


def _statements_for(engine: Engine, name: str, *, drop: bool) -> list[str]:
    dialect = engine.dialect.name
    if dialect == 'postgresql':
        if drop:
            return [f'DROP TRIGGER IF EXISTS {name} ON replenishment_orders']
        return _postgresql_install(name)
    if dialect == 'sqlite':
        if drop:
            return [f'DROP TRIGGER IF EXISTS {name}']
        return _sqlite_install(name)
    raise RuntimeError(f'Restock trigger is not supported on {dialect}')


def install_restock_trigger(engine: Engine, *, name: str = TRIGGER_NAME) -> None:
    with engine.begin() as conn:
        for statement in _statements_for(engine, name, drop=False):
            conn.exec_driver_sql(statement)


def drop_restock_trigger(engine: Engine, *, name: str = TRIGGER_NAME) -> None:
    with engine.begin() as conn:
        for statement in _statements_for(engine, name, drop=True):
            conn.exec_driver_sql(statement)


def main() -> None:
    parser = argparse.ArgumentParser(description='Install or drop the replenishment restock trigger.')
    parser.add_argument('--drop', action='store_true', help='Drop the trigger instead of installing it.')
    args = parser.parse_args()

    configure_logging(settings.log_level)
    database = Database().open()
    try:
        if args.drop:
            drop_restock_trigger(database.engine)
            print(f'Dropped trigger {TRIGGER_NAME}')
        else:
            install_restock_trigger(database.engine)
            print(f'Installed trigger {TRIGGER_NAME}')
    finally:
        database.close()


if __name__ == '__main__':
    main()
