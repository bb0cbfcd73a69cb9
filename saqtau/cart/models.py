"""Cart models with Decimal-based pricing."""
import copy
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List

from saqtau.services.money import parse_decimal, round_money, multiply, add, subtract

GUEST_USER_ID = "guest"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise TypeError(f"Expected ISO-8601 string, got {type(value).__name__}")
    # fromisoformat on older interpreters does not accept the "Z" suffix
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _parse_int(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Expected integer, got {value!r}")
    return value


def new_cart_id() -> str:
    return f"cart_{int(time.time() * 1000)}"


@dataclass
class Product:
    """Catalog product as seen by the cart. Read-only to the engine."""
    id: str
    original_price: Decimal
    discount_price: Decimal
    quantity: int  # Available stock
    unit: str = "шт"
    title: str = ""
    partner_id: Optional[str] = None

    def __post_init__(self):
        if not self.id or not isinstance(self.id, str):
            raise ValueError("product id must be a non-empty string")
        self.original_price = parse_decimal(self.original_price)
        self.discount_price = parse_decimal(self.discount_price)
        if self.original_price < 0:
            raise ValueError("original_price must be non-negative")
        if not 0 <= self.discount_price <= self.original_price:
            raise ValueError("discount_price must be between 0 and original_price")
        if _parse_int(self.quantity) < 0:
            raise ValueError("quantity must be a non-negative integer")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "original_price": str(self.original_price),
            "discount_price": str(self.discount_price),
            "quantity": self.quantity,
            "unit": self.unit,
            "title": self.title,
            "partner_id": self.partner_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        return cls(
            id=data["id"],
            original_price=data["original_price"],
            discount_price=data["discount_price"],
            quantity=_parse_int(data["quantity"]),
            unit=data.get("unit", "шт"),
            title=data.get("title", ""),
            partner_id=data.get("partner_id"),
        )


@dataclass
class CartItem:
    """Single line in the cart: a product snapshot taken at add-time and a quantity."""
    product: Product
    quantity: int
    added_at: datetime = field(default_factory=_utcnow)

    @property
    def product_id(self) -> str:
        return self.product.id

    @property
    def total_price(self) -> Decimal:
        """Discounted price for all units."""
        return multiply(self.product.discount_price, self.quantity)

    @property
    def original_total_price(self) -> Decimal:
        """Undiscounted price for all units, for showing savings."""
        return multiply(self.product.original_price, self.quantity)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product": self.product.to_dict(),
            "quantity": self.quantity,
            "added_at": self.added_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartItem":
        product = Product.from_dict(data["product"])
        if data.get("product_id", product.id) != product.id:
            raise ValueError("product_id does not match product snapshot")
        quantity = _parse_int(data["quantity"])
        if quantity < 1:
            raise ValueError("line item quantity must be positive")
        return cls(
            product=product,
            quantity=quantity,
            added_at=_parse_datetime(data["added_at"]),
        )


@dataclass
class Cart:
    """Shopping cart with derived totals.

    Totals are stored so a snapshot mirrors what the buyer saw, but they are
    always rebuilt by recalculate() rather than patched.
    """
    user_id: str = GUEST_USER_ID
    items: List[CartItem] = field(default_factory=list)
    id: str = field(default_factory=new_cart_id)
    promo_code: Optional[str] = None
    total: Decimal = Decimal("0")
    commission: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    final_total: Decimal = Decimal("0")
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def total_items(self) -> int:
        """Total number of units in cart."""
        return sum(item.quantity for item in self.items)

    @property
    def savings(self) -> Decimal:
        """How much the discounted prices save against original prices."""
        original = sum((item.original_total_price for item in self.items), Decimal("0"))
        return subtract(original, self.total)

    def find_item(self, product_id: str) -> Optional[CartItem]:
        return next((item for item in self.items if item.product_id == product_id), None)

    def recalculate(
        self,
        commission_rate: Decimal,
        promo_discount_rate: Decimal,
        round_commission_to_int: bool = True,
    ) -> None:
        """
        Rebuild every total from the line items.

        Calculation order:
        1. total = sum of discount_price * quantity
        2. commission = total * commission_rate, rounded
        3. discount = total * promo_discount_rate when a promo code is set
        4. final_total = total + commission - discount
        """
        self.total = sum((item.total_price for item in self.items), Decimal("0"))
        self.commission = round_money(multiply(self.total, commission_rate), to_int=round_commission_to_int)
        self.discount = multiply(self.total, promo_discount_rate) if self.promo_code else Decimal("0")
        self.final_total = subtract(add(self.total, self.commission), self.discount)

    def touch(self) -> None:
        self.updated_at = _utcnow()

    def copy(self) -> "Cart":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary for the snapshot store."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "items": [item.to_dict() for item in self.items],
            "promo_code": self.promo_code,
            "total": str(self.total),
            "commission": str(self.commission),
            "discount": str(self.discount),
            "final_total": str(self.final_total),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Cart":
        """
        Create from dictionary.

        Stored totals are display-only and not read back; call recalculate()
        before using the cart.

        Raises:
            KeyError, TypeError, ValueError: on a malformed snapshot
        """
        items = [CartItem.from_dict(item) for item in data["items"]]
        product_ids = [item.product_id for item in items]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError("duplicate line items in snapshot")
        promo_code = data.get("promo_code")
        if promo_code is not None and not isinstance(promo_code, str):
            raise TypeError("promo_code must be a string")
        return cls(
            id=str(data["id"]),
            user_id=str(data.get("user_id") or GUEST_USER_ID),
            items=items,
            promo_code=promo_code,
            created_at=_parse_datetime(data["created_at"]),
            updated_at=_parse_datetime(data.get("updated_at") or data["created_at"]),
        )
