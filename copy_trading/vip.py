"""
VIP Tiers.

A tier carries a level (gates futures copy trading, 0 means
ineligible) and the profit percentage applied to followers
of futures orders.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from core.constants import ZERO
from core.exceptions import IneligibleError, NotFoundError, ValidationError
from database.engine import transaction_scope
from database.models import VipTier
from accounts.balance_store import to_decimal
from copy_trading.types import VipTierStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedTier:
    tier_id: str
    name: str
    level: int
    percentage: Decimal


def resolve_tier(session: Session, tier_id: Optional[str]) -> Optional[ResolvedTier]:
    """
    Resolve a tier reference.

    Returns None when the user has no tier. Inactive tiers resolve
    to level 0.

    Raises:
        NotFoundError: the reference points at no tier
    """
    if not tier_id:
        return None
    tier = session.get(VipTier, tier_id)
    if tier is None:
        raise NotFoundError("VIP tier", tier_id)
    level = tier.level if tier.status == VipTierStatus.ACTIVE.value else 0
    return ResolvedTier(
        tier_id=tier.id,
        name=tier.name,
        level=level,
        percentage=tier.percentage or ZERO,
    )


def require_futures_eligible(session: Session, tier_id: Optional[str]) -> ResolvedTier:
    """Tier of a user allowed to follow futures orders."""
    tier = resolve_tier(session, tier_id)
    if tier is None or tier.level <= 0:
        raise IneligibleError(
            "VIP tier required to follow futures orders",
            context={"vip_tier_id": tier_id or ""},
        )
    return tier


class VipTierService:
    """Admin management of VIP tiers."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create_tier(
        self,
        name: str,
        level: int,
        percentage,
        status: str = VipTierStatus.ACTIVE.value,
    ) -> VipTier:
        if not name or not name.strip():
            raise ValidationError("name is required", field="name")
        if level is None or int(level) < 0:
            raise ValidationError("level must be 0 or greater", field="level")
        percentage = to_decimal(percentage, "percentage")
        if percentage < ZERO:
            raise ValidationError("percentage must not be negative", field="percentage")
        try:
            status = VipTierStatus(status).value
        except ValueError:
            raise ValidationError("status must be active or inactive", field="status")

        with transaction_scope(self._session_factory) as session:
            tier = VipTier(name=name.strip(), level=int(level), status=status, percentage=percentage)
            session.add(tier)
            try:
                session.flush()
            except IntegrityError:
                raise ValidationError(f"VIP tier {name} already exists", field="name")

        logger.info(f"Created VIP tier {tier.name} level={tier.level} percentage={tier.percentage}")
        return tier

    def list_tiers(self) -> List[VipTier]:
        with transaction_scope(self._session_factory) as session:
            stmt = select(VipTier).order_by(VipTier.level, VipTier.name)
            return list(session.execute(stmt).scalars())
