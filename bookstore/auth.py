from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status

from bookstore.models import UserType


@dataclass
class Principal:
    id: int
    user_type: UserType


def get_current_principal(
    x_user_id: str | None = Header(default=None),
    x_user_type: str | None = Header(default=None),
) -> Principal:
    # Identity is established upstream by the authenticating gateway.
    if not x_user_id or not x_user_id.strip().isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    try:
        user_type = UserType((x_user_type or '').strip().upper())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED) from exc
    return Principal(id=int(x_user_id), user_type=user_type)


def require_role(*allowed: UserType):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.user_type not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep
