"""
Loyalty tiers: visit count -> discount rate
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .exceptions import ValidationError


class LoyaltyLabel(Enum):
    """Loyalty tier names"""
    BASIC = "Basic"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"
    DIAMOND = "Diamond"


@dataclass(frozen=True)
class DiscountTier:
    """
    A loyalty bracket

    Attributes:
        min_visits: inclusive lower bound on completed transactions
        rate: fraction of the subtotal taken off
        label: tier name
    """
    min_visits: int
    rate: float
    label: LoyaltyLabel

    @property
    def percent(self) -> int:
        return round(self.rate * 100)


# Highest threshold first
TIERS: Tuple[DiscountTier, ...] = (
    DiscountTier(26, 0.25, LoyaltyLabel.DIAMOND),
    DiscountTier(16, 0.20, LoyaltyLabel.PLATINUM),
    DiscountTier(11, 0.10, LoyaltyLabel.GOLD),
    DiscountTier(6, 0.05, LoyaltyLabel.SILVER),
    DiscountTier(0, 0.00, LoyaltyLabel.BASIC),
)


def _check_visits(visit_count: int) -> None:
    if isinstance(visit_count, bool) or not isinstance(visit_count, int):
        raise ValidationError(f"Visit count must be an integer, got {visit_count!r}")
    if visit_count < 0:
        raise ValidationError(f"Visit count must be non-negative, got {visit_count}")


def rate_for(visit_count: int) -> DiscountTier:
    """
    Map a customer's completed-transaction count to their loyalty tier
    """
    _check_visits(visit_count)
    for tier in TIERS:
        if visit_count >= tier.min_visits:
            return tier
    # unreachable: the Basic tier starts at zero
    return TIERS[-1]


def next_tier(visit_count: int) -> Optional[Tuple[DiscountTier, int]]:
    """
    The tier above the current one and how many more visits it takes

    Returns None once the customer is in the top tier.
    """
    current = rate_for(visit_count)
    index = TIERS.index(current)
    if index == 0:
        return None
    upcoming = TIERS[index - 1]
    return upcoming, upcoming.min_visits - visit_count
