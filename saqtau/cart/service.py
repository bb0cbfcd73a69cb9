"""Cart engine: owns cart state, recomputes totals, persists snapshots."""
import dataclasses
import json
import threading
from decimal import Decimal
from typing import Optional

from saqtau.config import CartSettings, get_cart_settings
from saqtau.errors import QuantityError, PersistenceWarning
from saqtau.logging import get_logger, sanitize_id_for_logging
from saqtau.services.money import format_money, to_float
from .models import Cart, CartItem, Product, GUEST_USER_ID
from .promo import CartResult, validate_promo_code
from .storage import KeyValueStore, MemoryStore, RedisStore, StorageKeys

logger = get_logger(__name__)


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class CartEngine:
    """
    Single owner of one session's cart.

    Features:
    - Totals rebuilt from line items after every mutation
    - No cart until the first item is added; removing the last item drops it
    - Stock bounds enforced on add/update when the caller knows the stock
    - Snapshot written to the key-value store after each mutation (best effort)

    Validation failures are returned as CartResult, never raised.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        session_id: str = GUEST_USER_ID,
        user_id: str = GUEST_USER_ID,
        settings: Optional[CartSettings] = None,
    ):
        self.store = store if store is not None else MemoryStore()
        self.settings = settings or get_cart_settings()
        self.user_id = user_id
        self.storage_key = StorageKeys.cart_key(self.settings.storage_prefix, session_id)
        self.last_warning: Optional[PersistenceWarning] = None
        self._lock = threading.RLock()
        self._cart: Optional[Cart] = self._load()

    # ==================== Reads ====================

    @property
    def cart(self) -> Optional[Cart]:
        """Copy of the current cart, or None when there is no cart."""
        with self._lock:
            return self._cart.copy() if self._cart else None

    @property
    def has_cart(self) -> bool:
        return self._cart is not None

    def get_total_item_count(self) -> int:
        """Sum of all line item quantities; 0 without a cart."""
        with self._lock:
            return self._cart.total_items if self._cart else 0

    def get_final_total(self) -> Decimal:
        """Amount payable; 0 without a cart."""
        with self._lock:
            return self._cart.final_total if self._cart else Decimal("0")

    def get_cart_summary(self) -> dict:
        """JSON-ready view of the cart for presentation and checkout."""
        with self._lock:
            cart = self._cart
            if cart is None:
                return {
                    "is_empty": True,
                    "total_items": 0,
                    "items": [],
                    "promo_code": None,
                    "total": 0.0,
                    "commission": 0.0,
                    "discount": 0.0,
                    "final_total": 0.0,
                    "final_total_display": format_money(0, self.settings.currency),
                    "currency": self.settings.currency,
                }

            return {
                "is_empty": False,
                "cart_id": cart.id,
                "user_id": cart.user_id,
                "total_items": cart.total_items,
                "items": [
                    {
                        "product_id": item.product_id,
                        "title": item.product.title,
                        "unit": item.product.unit,
                        "quantity": item.quantity,
                        "available_stock": item.product.quantity,
                        "unit_price": to_float(item.product.discount_price),
                        "original_price": to_float(item.product.original_price),
                        "total": to_float(item.total_price),
                    }
                    for item in cart.items
                ],
                "promo_code": cart.promo_code,
                "total": to_float(cart.total),
                "commission": to_float(cart.commission),
                "discount": to_float(cart.discount),
                "final_total": to_float(cart.final_total),
                "final_total_display": format_money(cart.final_total, self.settings.currency),
                "savings": to_float(cart.savings),
                "currency": self.settings.currency,
                "created_at": cart.created_at.isoformat(),
                "updated_at": cart.updated_at.isoformat(),
            }

    # ==================== Mutations ====================

    def add_item(
        self,
        product: Product,
        quantity: int = 1,
        available_stock: Optional[int] = None,
    ) -> CartResult:
        """
        Add units of a product, creating the cart if needed.

        An existing line is incremented and keeps its original product
        snapshot. With available_stock the resulting line quantity may not
        exceed it; without it no upper bound is applied.
        """
        if not _is_positive_int(quantity):
            return CartResult.failure(QuantityError.INVALID)
        if product.quantity < 1 or (available_stock is not None and available_stock < 1):
            return CartResult.failure(QuantityError.OUT_OF_STOCK)

        with self._lock:
            existing = self._cart.find_item(product.id) if self._cart else None
            new_quantity = quantity + (existing.quantity if existing else 0)
            if available_stock is not None and new_quantity > available_stock:
                return CartResult.failure(QuantityError.EXCEEDS_STOCK)

            if self._cart is None:
                self._cart = Cart(user_id=self.user_id)
                logger.info(f"Created cart {self._cart.id} for user {sanitize_id_for_logging(self.user_id)}")

            if existing:
                existing.quantity = new_quantity
            else:
                self._cart.items.append(CartItem(product=dataclasses.replace(product), quantity=quantity))

            self._commit()
            logger.debug(f"Added {quantity} x {sanitize_id_for_logging(product.id)} to cart")
            return CartResult.success()

    def remove_item(self, product_id: str) -> None:
        """Remove a line item. Missing items are ignored."""
        with self._lock:
            if self._cart is None or self._cart.find_item(product_id) is None:
                return

            self._cart.items = [item for item in self._cart.items if item.product_id != product_id]
            if not self._cart.items:
                self._drop_cart()
                return
            self._commit()

    def set_quantity(
        self,
        product_id: str,
        quantity: int,
        available_stock: Optional[int] = None,
    ) -> CartResult:
        """
        Replace a line's quantity. Zero or negative removes the line.

        The bound is available_stock when given, otherwise the stock recorded
        in the line's product snapshot.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            return CartResult.failure(QuantityError.INVALID)
        if quantity <= 0:
            self.remove_item(product_id)
            return CartResult.success()

        with self._lock:
            item = self._cart.find_item(product_id) if self._cart else None
            if item is None:
                return CartResult.failure(QuantityError.NOT_IN_CART)

            limit = available_stock if available_stock is not None else item.product.quantity
            if quantity > limit:
                return CartResult.failure(QuantityError.EXCEEDS_STOCK)

            item.quantity = quantity
            self._commit()
            return CartResult.success()

    def sync_product(self, product: Product) -> int:
        """
        Replace a line's product snapshot with fresh catalog data.

        The quantity is clamped to the new stock; a product with no stock
        left is removed. Returns the line's quantity afterwards (0 when the
        product is not in the cart or was removed).
        """
        with self._lock:
            item = self._cart.find_item(product.id) if self._cart else None
            if item is None:
                return 0
            if product.quantity < 1:
                logger.info(f"Product {sanitize_id_for_logging(product.id)} sold out, removing from cart")
                self.remove_item(product.id)
                return 0

            item.product = dataclasses.replace(product)
            item.quantity = min(item.quantity, product.quantity)
            self._commit()
            return item.quantity

    def clear(self) -> None:
        """Drop the cart and its persisted snapshot."""
        with self._lock:
            self._drop_cart()

    def apply_promo_code(self, code: str) -> CartResult:
        """
        Apply a promo code, replacing any active one.

        Without a cart a valid code is accepted but has nothing to apply to.
        """
        validation = validate_promo_code(code, self.settings.promo_codes, self.settings.promo_discount_rate)
        if not validation.valid:
            logger.debug(f"Rejected promo code: {validation.error.value}")
            return CartResult.failure(validation.error)

        with self._lock:
            if self._cart is None:
                return CartResult.success()
            self._cart.promo_code = validation.code
            self._commit()
            logger.info(f"Applied promo code {validation.code} to cart {self._cart.id}")
            return CartResult.success()

    def remove_promo_code(self) -> None:
        with self._lock:
            if self._cart is None or self._cart.promo_code is None:
                return
            self._cart.promo_code = None
            self._commit()

    def assign_user(self, user_id: str) -> None:
        """Attach an authenticated owner to the session (and its guest cart)."""
        with self._lock:
            self.user_id = user_id
            if self._cart is not None and self._cart.user_id != user_id:
                self._cart.user_id = user_id
                self._commit()

    # ==================== Internals ====================

    def _commit(self) -> None:
        self._cart.recalculate(
            self.settings.commission_rate,
            self.settings.promo_discount_rate,
            self.settings.round_commission_to_int,
        )
        self._cart.touch()
        self._persist()

    def _drop_cart(self) -> None:
        self._cart = None
        self._persist()

    def _persist(self) -> None:
        """Write or delete the snapshot. Failures only affect durability."""
        try:
            if self._cart is None:
                self.store.delete(self.storage_key)
            else:
                self.store.set(self.storage_key, json.dumps(self._cart.to_dict()))
            self.last_warning = None
        except Exception as e:
            self.last_warning = PersistenceWarning(f"Failed to save cart snapshot: {e}")
            logger.warning(f"Failed to persist cart {self.storage_key}: {e}", exc_info=True)

    def _load(self) -> Optional[Cart]:
        """Restore the snapshot, treating anything unreadable as no cart."""
        try:
            data = self.store.get(self.storage_key)
        except Exception as e:
            self.last_warning = PersistenceWarning(f"Failed to load cart snapshot: {e}")
            logger.warning(f"Failed to load cart {self.storage_key}: {e}")
            return None

        if not data:
            return None

        try:
            cart = Cart.from_dict(json.loads(data))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError, RecursionError) as e:
            self.last_warning = PersistenceWarning(f"Corrupted cart snapshot: {e}")
            logger.warning(f"Corrupted cart data for {self.storage_key}: {e}")
            return None

        if not cart.items:
            return None

        if cart.promo_code:
            validation = validate_promo_code(
                cart.promo_code, self.settings.promo_codes, self.settings.promo_discount_rate
            )
            if validation.valid:
                cart.promo_code = validation.code
            else:
                logger.info(f"Dropping promo code {cart.promo_code} that is no longer accepted")
                cart.promo_code = None

        cart.recalculate(
            self.settings.commission_rate,
            self.settings.promo_discount_rate,
            self.settings.round_commission_to_int,
        )
        return cart


def create_cart_engine(session_id: str = GUEST_USER_ID, store: Optional[KeyValueStore] = None, **kwargs) -> CartEngine:
    """Build an engine for a session, defaulting to the Redis snapshot store."""
    if store is None:
        store = RedisStore()
    return CartEngine(store=store, session_id=session_id, **kwargs)
