"""
Authenticated user context.

The ledger never authenticates. Callers pass the identity the
upstream gateway already verified.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException

from core.exceptions import ValidationError

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class UserContext:
    """Identity of the user an operation acts for."""

    user_id: str
    vip_tier_id: Optional[str] = None
    is_admin: bool = False

    def __post_init__(self):
        if not self.user_id or not str(self.user_id).strip():
            raise ValidationError("user_id is required", field="user_id")


def current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_vip_tier_id: Optional[str] = Header(None, alias="X-Vip-Tier-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> UserContext:
    """FastAPI dependency: identity forwarded by the authenticating gateway."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return UserContext(
        user_id=x_user_id,
        vip_tier_id=x_vip_tier_id or None,
        is_admin=(x_user_role or "").lower() == ADMIN_ROLE,
    )


def current_admin(user: UserContext = Depends(current_user)) -> UserContext:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return user
