from __future__ import annotations

from sqlalchemy.orm import Session

from bookstore.models import AuditLog


def log_audit(
    db: Session,
    *,
    actor_user_id: int | None,
    action: str,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            meta=metadata or {},
        )
    )
