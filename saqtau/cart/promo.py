"""Promo code validation against the static allow-list.

Every accepted code applies the same flat discount rate from CartSettings.
Codes are not differentiated by their names (FOOD15 does not mean 15%).
"""
from decimal import Decimal
from typing import Optional, Iterable, Union

from pydantic import BaseModel

from saqtau.errors import PromoError, QuantityError, ERROR_MESSAGES


class CartResult(BaseModel):
    """Outcome of a cart operation that can be rejected by validation."""
    ok: bool
    error: Optional[Union[PromoError, QuantityError]] = None
    message: Optional[str] = None

    @classmethod
    def success(cls) -> "CartResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: Union[PromoError, QuantityError]) -> "CartResult":
        return cls(ok=False, error=error, message=ERROR_MESSAGES[error])


class PromoValidationResult(BaseModel):
    """Result of promo code validation."""
    valid: bool
    code: Optional[str] = None
    discount_rate: Decimal = Decimal("0")
    error: Optional[PromoError] = None


def normalize_promo_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def validate_promo_code(
    code: Optional[str],
    allowed_codes: Iterable[str],
    discount_rate: Decimal,
) -> PromoValidationResult:
    """
    Check a user-entered code against the allow-list.

    Matching is case-insensitive and ignores surrounding whitespace.
    """
    normalized = normalize_promo_code(code)
    if not normalized:
        return PromoValidationResult(valid=False, error=PromoError.EMPTY)

    if normalized not in {normalize_promo_code(allowed) for allowed in allowed_codes}:
        return PromoValidationResult(valid=False, code=normalized, error=PromoError.INVALID)

    return PromoValidationResult(valid=True, code=normalized, discount_rate=discount_rate)
