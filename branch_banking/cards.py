"""
Debit Card Policy Module

Static per-tier daily caps. Card behaviour is dispatched through the
CARD_POLICIES lookup table rather than a card class per tier.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Union

from .errors import InvalidArgumentError


class CardTier(Enum):
    """Debit card tiers"""
    STANDARD = "standard"
    TITANIUM = "titanium"
    PLATINUM = "platinum"

    @classmethod
    def parse(cls, value: Union["CardTier", str]) -> "CardTier":
        """Parse a tier from its value, name, or menu letter (M/T/P)"""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for tier in cls:
            if text in (tier.value, tier.name.lower()):
                return tier
        if text in _MENU_LETTERS:
            return _MENU_LETTERS[text]
        choices = ", ".join(t.value for t in cls)
        raise InvalidArgumentError(f"Card type must be one of: {choices}")


_MENU_LETTERS = {
    "m": CardTier.STANDARD,
    "t": CardTier.TITANIUM,
    "p": CardTier.PLATINUM,
}


@dataclass(frozen=True)
class CardPolicy:
    """Daily caps for one card tier"""
    tier: CardTier
    deposit_limit_daily: Decimal
    withdraw_limit_daily: Decimal
    transfer_limit_own_account_daily: Decimal
    transfer_limit_other_account_daily: Decimal

    def transfer_limit(self, is_own_account_transfer: bool) -> Decimal:
        """Cap for a transfer, selected by whether both accounts share an owner"""
        if is_own_account_transfer:
            return self.transfer_limit_own_account_daily
        return self.transfer_limit_other_account_daily


CARD_POLICIES: Dict[CardTier, CardPolicy] = {
    CardTier.STANDARD: CardPolicy(
        tier=CardTier.STANDARD,
        deposit_limit_daily=Decimal("200000.00"),
        withdraw_limit_daily=Decimal("5000.00"),
        transfer_limit_own_account_daily=Decimal("20000.00"),
        transfer_limit_other_account_daily=Decimal("10000.00"),
    ),
    CardTier.TITANIUM: CardPolicy(
        tier=CardTier.TITANIUM,
        deposit_limit_daily=Decimal("200000.00"),
        withdraw_limit_daily=Decimal("10000.00"),
        transfer_limit_own_account_daily=Decimal("40000.00"),
        transfer_limit_other_account_daily=Decimal("20000.00"),
    ),
    CardTier.PLATINUM: CardPolicy(
        tier=CardTier.PLATINUM,
        deposit_limit_daily=Decimal("200000.00"),
        withdraw_limit_daily=Decimal("20000.00"),
        transfer_limit_own_account_daily=Decimal("80000.00"),
        transfer_limit_other_account_daily=Decimal("40000.00"),
    ),
}

# First digits of issued card numbers, per tier
CARD_ID_PREFIXES: Dict[CardTier, int] = {
    CardTier.STANDARD: 510000000,
    CardTier.TITANIUM: 530000000,
    CardTier.PLATINUM: 540000000,
}


def resolve_card_limits(card_tier: Union[CardTier, str]) -> CardPolicy:
    """Look up the daily caps for a card tier"""
    return CARD_POLICIES[CardTier.parse(card_tier)]
