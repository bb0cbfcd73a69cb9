"""
Common Error Constants

Centralized error messages and the error types shared by the cart engine.
"""
from enum import Enum

# Promo errors
ERROR_PROMO_EMPTY = "Promo code is empty"
ERROR_PROMO_INVALID = "Promo code is not valid"

# Quantity errors
ERROR_QUANTITY_INVALID = "Quantity must be a positive integer"
ERROR_PRODUCT_OUT_OF_STOCK = "Product out of stock"
ERROR_QUANTITY_EXCEEDS_STOCK = "Requested quantity exceeds available stock"

# Cart errors
ERROR_CART_ITEM_NOT_FOUND = "Product is not in the cart"

# Storage errors
ERROR_STORAGE_UNAVAILABLE = "Cart storage unavailable"


class PromoError(str, Enum):
    """Why a promo code was rejected."""
    EMPTY = "empty"
    INVALID = "invalid"


class QuantityError(str, Enum):
    """Why a quantity change was rejected."""
    INVALID = "invalid_quantity"
    OUT_OF_STOCK = "out_of_stock"
    EXCEEDS_STOCK = "exceeds_stock"
    NOT_IN_CART = "not_in_cart"


ERROR_MESSAGES = {
    PromoError.EMPTY: ERROR_PROMO_EMPTY,
    PromoError.INVALID: ERROR_PROMO_INVALID,
    QuantityError.INVALID: ERROR_QUANTITY_INVALID,
    QuantityError.OUT_OF_STOCK: ERROR_PRODUCT_OUT_OF_STOCK,
    QuantityError.EXCEEDS_STOCK: ERROR_QUANTITY_EXCEEDS_STOCK,
    QuantityError.NOT_IN_CART: ERROR_CART_ITEM_NOT_FOUND,
}


class StorageError(Exception):
    """Raised by key-value store adapters when a read or write fails."""


class PersistenceWarning(RuntimeWarning):
    """A snapshot could not be loaded or saved; in-memory state is still valid."""
