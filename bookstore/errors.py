from __future__ import annotations


class BookstoreError(ValueError):
    """Base class for business rule failures raised by the inventory core."""

    def context(self) -> dict:
        return {}


class NotFoundError(BookstoreError):
    def __init__(self, kind: str, key) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f'{kind} {key} not found')

    def context(self) -> dict:
        return {'kind': self.kind, 'key': self.key}


class InsufficientStockError(BookstoreError):
    def __init__(self, isbn: str, *, available: int, requested: int, title: str | None = None) -> None:
        self.isbn = isbn
        self.available = available
        self.requested = requested
        self.title = title
        label = title or isbn
        super().__init__(f'Insufficient stock for {label}. Only {available} available, {requested} requested.')

    def context(self) -> dict:
        return {'isbn': self.isbn, 'available': self.available, 'requested': self.requested}


class EmptyCartError(BookstoreError):
    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__('Cart is empty')

    def context(self) -> dict:
        return {'user_id': self.user_id}


class InvalidStateError(BookstoreError):
    def __init__(self, message: str, *, order_id: int | None = None, status: str | None = None) -> None:
        self.order_id = order_id
        self.status = status
        super().__init__(message)

    def context(self) -> dict:
        return {'order_id': self.order_id, 'status': self.status}


class TransientStoreFailure(RuntimeError):
    """The store aborted the transaction (lock timeout, deadlock, lost connection).

    Raised only after the owning transaction has been rolled back, so the
    caller may retry the whole operation.
    """
