"""
Cart configuration.

Values come from environment variables (a local .env file is loaded when
present). Build the engine with a different CartSettings to use another
commission rate, e.g. a partner-specific one.
"""
import os
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import FrozenSet, Optional

from dotenv import load_dotenv

from saqtau.services.money import parse_decimal, is_integer_currency

load_dotenv()

DEFAULT_COMMISSION_RATE = Decimal("0.15")
DEFAULT_PROMO_DISCOUNT_RATE = Decimal("0.10")
DEFAULT_PROMO_CODES = frozenset({"SAVE10", "FOOD15", "ECO20"})
DEFAULT_CURRENCY = "KZT"
DEFAULT_STORAGE_PREFIX = "saqtau_cart"

def _parse_rate(raw: Optional[str], default: Decimal, name: str) -> Decimal:
    if raw is None or not raw.strip():
        return default
    rate = parse_decimal(raw.strip())
    if rate < 0 or rate > 1:
        raise ValueError(f"{name} must be between 0 and 1, got {raw}")
    return rate


def _parse_codes(raw: Optional[str]) -> FrozenSet[str]:
    if raw is None or not raw.strip():
        return DEFAULT_PROMO_CODES
    return frozenset(code.strip().upper() for code in raw.split(",") if code.strip())


@dataclass(frozen=True)
class CartSettings:
    """Pricing and storage parameters for a CartEngine."""
    commission_rate: Decimal = DEFAULT_COMMISSION_RATE
    promo_discount_rate: Decimal = DEFAULT_PROMO_DISCOUNT_RATE
    promo_codes: FrozenSet[str] = field(default=DEFAULT_PROMO_CODES)
    currency: str = DEFAULT_CURRENCY
    storage_prefix: str = DEFAULT_STORAGE_PREFIX

    @property
    def round_commission_to_int(self) -> bool:
        return is_integer_currency(self.currency)

    def with_commission_rate(self, rate) -> "CartSettings":
        """Copy of these settings with another commission rate."""
        return replace(self, commission_rate=parse_decimal(rate))


def get_cart_settings() -> CartSettings:
    """
    Build settings from the environment.

    Raises:
        ValueError: if a rate is not a number between 0 and 1
    """
    return CartSettings(
        commission_rate=_parse_rate(
            os.environ.get("CART_COMMISSION_RATE"), DEFAULT_COMMISSION_RATE, "CART_COMMISSION_RATE"
        ),
        promo_discount_rate=_parse_rate(
            os.environ.get("CART_PROMO_DISCOUNT_RATE"), DEFAULT_PROMO_DISCOUNT_RATE, "CART_PROMO_DISCOUNT_RATE"
        ),
        promo_codes=_parse_codes(os.environ.get("CART_PROMO_CODES")),
        currency=os.environ.get("CART_CURRENCY", DEFAULT_CURRENCY).strip().upper() or DEFAULT_CURRENCY,
        storage_prefix=os.environ.get("CART_STORAGE_PREFIX", DEFAULT_STORAGE_PREFIX),
    )
