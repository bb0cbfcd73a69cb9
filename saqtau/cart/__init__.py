"""Cart package: models, promo validation, storage, and engine."""
from .models import Product, CartItem, Cart, GUEST_USER_ID
from .promo import CartResult, PromoValidationResult, validate_promo_code
from .service import CartEngine, create_cart_engine
from .storage import KeyValueStore, MemoryStore, FileStore, RedisStore

__all__ = [
    "Product",
    "CartItem",
    "Cart",
    "GUEST_USER_ID",
    "CartResult",
    "PromoValidationResult",
    "validate_promo_code",
    "CartEngine",
    "create_cart_engine",
    "KeyValueStore",
    "MemoryStore",
    "FileStore",
    "RedisStore",
]
