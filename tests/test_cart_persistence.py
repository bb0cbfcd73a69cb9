"""
Tests for cart snapshot persistence
"""

import json
import logging
from decimal import Decimal

from saqtau.cart import CartEngine, FileStore, MemoryStore, RedisStore, create_cart_engine
from saqtau.config import CartSettings
from saqtau.errors import PersistenceWarning, StorageError

CART_KEY = "saqtau_cart:guest"


class BrokenStore:
    """Store whose every operation fails."""

    def get(self, key):
        raise StorageError("connection refused")

    def set(self, key, value):
        raise StorageError("connection refused")

    def delete(self, key):
        raise StorageError("connection refused")


class TestSnapshotRoundTrip:
    """Tests for saving and restoring carts across engines."""

    def test_mutation_writes_snapshot(self, engine, store, bread):
        """Test mutation writes snapshot."""
        engine.add_item(bread, 2)

        data = json.loads(store.get(CART_KEY))
        assert data["user_id"] == "guest"
        assert data["items"][0]["product_id"] == bread.id
        assert data["items"][0]["quantity"] == 2
        assert data["final_total"] == "2760"
        assert "T" in data["created_at"]

    def test_new_engine_restores_cart(self, engine, store, settings, bread, jacket):
        """Test new engine restores cart."""
        engine.add_item(bread, 2)
        engine.add_item(jacket, 1)
        engine.apply_promo_code("FOOD15")

        restored = CartEngine(store=store, settings=settings)

        assert restored.cart == engine.cart
        assert restored.get_final_total() == 6195
        assert restored.cart.items[0].added_at == engine.cart.items[0].added_at
        assert restored.last_warning is None

    def test_clear_deletes_snapshot(self, engine, store, bread):
        """Test clear deletes snapshot."""
        engine.add_item(bread)
        engine.clear()

        assert store.get(CART_KEY) is None

    def test_removing_last_item_deletes_snapshot(self, engine, store, bread):
        """Test removing last item deletes snapshot."""
        engine.add_item(bread)
        engine.remove_item(bread.id)

        assert store.get(CART_KEY) is None

    def test_sessions_use_separate_keys(self, store, settings, bread):
        """Test sessions use separate keys."""
        alice = CartEngine(store=store, session_id="alice", settings=settings)
        bob = CartEngine(store=store, session_id="bob", settings=settings)

        alice.add_item(bread)

        assert store.get("saqtau_cart:alice") is not None
        assert bob.cart is None
        assert CartEngine(store=store, session_id="bob", settings=settings).cart is None

    def test_totals_recomputed_on_load(self, engine, store, bread):
        """Test totals recomputed on load."""
        engine.add_item(bread, 2)
        data = json.loads(store.get(CART_KEY))
        data["total"] = "1"
        data["final_total"] = "1"
        store.set(CART_KEY, json.dumps(data))

        restored = CartEngine(store=store, settings=CartSettings())

        assert restored.cart.total == 2400
        assert restored.get_final_total() == 2760

    def test_new_commission_rate_applies_on_load(self, engine, store, bread):
        """Test new commission rate applies on load."""
        engine.add_item(bread, 2)

        restored = CartEngine(store=store, settings=CartSettings(commission_rate=Decimal("0.20")))

        assert restored.cart.commission == 480

    def test_retired_promo_code_dropped_on_load(self, engine, store, bread):
        """Test retired promo code dropped on load."""
        engine.add_item(bread, 2)
        engine.apply_promo_code("SAVE10")

        restored = CartEngine(store=store, settings=CartSettings(promo_codes=frozenset({"ECO20"})))

        assert restored.cart.promo_code is None
        assert restored.cart.discount == 0


    def test_lower_case_allow_list_keeps_promo_on_load(self, store, bread):
        """Test that a promo from a lower-case allow-list survives a reload"""
        settings = CartSettings(promo_codes=frozenset({"welcome"}))
        engine = CartEngine(store=store, settings=settings)
        engine.add_item(bread, 1)
        assert engine.apply_promo_code("welcome").ok

        restored = CartEngine(store=store, settings=settings)

        assert restored.cart.promo_code == "WELCOME"
        assert restored.get_final_total() == engine.get_final_total() == 1260

    def test_file_store_sessions_stay_separate(self, tmp_path, settings, bread):
        """Test that similar session ids never share a persisted cart"""
        store = FileStore(tmp_path)
        engine = CartEngine(store=store, session_id="alice/1", settings=settings)
        engine.add_item(bread, 2)

        other = CartEngine(store=store, session_id="alice_1", settings=settings)

        assert other.cart is None
        assert CartEngine(store=store, session_id="alice/1", settings=settings).get_total_item_count() == 2


class TestCorruptedSnapshots:
    """Malformed snapshots load as no cart with a warning."""

    def _load(self, raw: str) -> CartEngine:
        return CartEngine(store=MemoryStore({CART_KEY: raw}), settings=CartSettings())

    def test_invalid_json(self, caplog):
        """Test unparseable JSON loads as no cart."""
        with caplog.at_level(logging.WARNING):
            engine = self._load("{not json")

        assert engine.cart is None
        assert isinstance(engine.last_warning, PersistenceWarning)
        assert "Corrupted cart data" in caplog.text

    def test_missing_fields(self):
        """Test missing fields."""
        engine = self._load(json.dumps({"id": "cart_1"}))

        assert engine.cart is None
        assert engine.last_warning is not None

    def test_wrongly_typed_quantity(self, engine, store, bread):
        """Test wrongly typed quantity."""
        engine.add_item(bread, 2)
        data = json.loads(store.get(CART_KEY))
        data["items"][0]["quantity"] = "2"

        assert self._load(json.dumps(data)).cart is None

    def test_non_positive_quantity(self, engine, store, bread):
        """Test non positive quantity."""
        engine.add_item(bread, 2)
        data = json.loads(store.get(CART_KEY))
        data["items"][0]["quantity"] = 0

        assert self._load(json.dumps(data)).cart is None

    def test_bad_date(self, engine, store, bread):
        """Test bad date."""
        engine.add_item(bread, 2)
        data = json.loads(store.get(CART_KEY))
        data["items"][0]["added_at"] = "yesterday"

        assert self._load(json.dumps(data)).cart is None

    def test_bad_price(self, engine, store, bread):
        """Test bad price."""
        engine.add_item(bread, 2)
        data = json.loads(store.get(CART_KEY))
        data["items"][0]["product"]["discount_price"] = "cheap"

        assert self._load(json.dumps(data)).cart is None

    def test_json_array(self):
        """Test a JSON array instead of an object."""
        assert self._load("[1, 2, 3]").cart is None

    def test_deeply_nested_json(self):
        """Test that pathologically nested input loads as no cart"""
        engine = self._load("[" * 100000)

        assert engine.cart is None
        assert isinstance(engine.last_warning, PersistenceWarning)

    def test_empty_items_is_no_cart(self, engine, store, bread):
        """Test empty items is no cart."""
        engine.add_item(bread, 2)
        data = json.loads(store.get(CART_KEY))
        data["items"] = []

        engine = self._load(json.dumps(data))

        assert engine.cart is None
        assert engine.last_warning is None

    def test_engine_usable_after_corrupted_load(self, bread):
        """Test engine usable after corrupted load."""
        engine = self._load("garbage")

        assert engine.add_item(bread, 1).ok
        assert engine.get_final_total() == 1380


class TestStorageFailures:
    """Storage failures never fail the mutation."""

    def test_load_failure_starts_without_cart(self, settings):
        """Test load failure starts without cart."""
        engine = CartEngine(store=BrokenStore(), settings=settings)

        assert engine.cart is None
        assert isinstance(engine.last_warning, PersistenceWarning)

    def test_mutations_succeed_in_memory(self, settings, bread, caplog):
        """Test mutations succeed in memory."""
        engine = CartEngine(store=BrokenStore(), settings=settings)

        with caplog.at_level(logging.WARNING):
            result = engine.add_item(bread, 2)

        assert result.ok
        assert engine.get_final_total() == 2760
        assert isinstance(engine.last_warning, PersistenceWarning)
        assert "Failed to persist cart" in caplog.text

    def test_clear_succeeds_in_memory(self, settings, bread):
        """Test clear succeeds in memory."""
        engine = CartEngine(store=BrokenStore(), settings=settings)
        engine.add_item(bread, 2)

        engine.clear()

        assert engine.cart is None

    def test_warning_cleared_after_successful_write(self, store, settings, bread):
        """Test warning cleared after successful write."""
        class FlakyStore(MemoryStore):
            fail = True

            def set(self, key, value):
                if self.fail:
                    raise StorageError("timeout")
                super().set(key, value)

        flaky = FlakyStore()
        engine = CartEngine(store=flaky, settings=settings)
        engine.add_item(bread)
        assert engine.last_warning is not None

        flaky.fail = False
        engine.add_item(bread)

        assert engine.last_warning is None
        assert flaky.get(CART_KEY) is not None


class TestCreateCartEngine:
    """Tests for the engine factory."""

    def test_defaults_to_redis_store(self, monkeypatch, settings):
        """Test the factory defaults to Redis."""
        monkeypatch.delenv("UPSTASH_REDIS_REST_URL", raising=False)
        monkeypatch.delenv("UPSTASH_REDIS_REST_TOKEN", raising=False)

        engine = create_cart_engine("session-1", settings=settings)

        assert isinstance(engine.store, RedisStore)
        assert engine.storage_key == "saqtau_cart:session-1"
        # No credentials: starts without a cart instead of failing
        assert engine.cart is None
        assert engine.last_warning is not None

    def test_uses_given_store(self, store, settings, bread):
        """Test uses given store."""
        engine = create_cart_engine("session-2", store=store, settings=settings, user_id="user-7")
        engine.add_item(bread)

        assert store.get("saqtau_cart:session-2") is not None
        assert engine.cart.user_id == "user-7"
