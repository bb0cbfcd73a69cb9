"""Pytest configuration and fixtures"""
import os
import pytest
from decimal import Decimal

from saqtau.cart import CartEngine, MemoryStore, Product
from saqtau.config import CartSettings

# Keep tests independent of a developer's Redis credentials
os.environ.pop("UPSTASH_REDIS_REST_URL", None)
os.environ.pop("UPSTASH_REDIS_REST_TOKEN", None)


@pytest.fixture
def settings():
    """Default pricing: 15% commission, flat 10% promo, tenge."""
    return CartSettings()


@pytest.fixture
def store():
    """In-memory snapshot store"""
    return MemoryStore()


@pytest.fixture
def engine(store, settings):
    """Fresh engine for a guest session"""
    return CartEngine(store=store, settings=settings)


@pytest.fixture
def bread():
    """Sample bakery product (P1)"""
    return Product(
        id="prod-bread",
        original_price=Decimal("2000"),
        discount_price=Decimal("1200"),
        quantity=10,
        unit="шт",
        title="Surplus bread box",
        partner_id="partner-1",
    )


@pytest.fixture
def jacket():
    """Sample clothing product (P2)"""
    return Product(
        id="prod-jacket",
        original_price=Decimal("7000"),
        discount_price=Decimal("3500"),
        quantity=3,
        unit="шт",
        title="Denim jacket",
        partner_id="partner-2",
    )


@pytest.fixture
def sold_out():
    """Product with no stock left"""
    return Product(
        id="prod-sold-out",
        original_price=Decimal("1000"),
        discount_price=Decimal("500"),
        quantity=0,
    )
