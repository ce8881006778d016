from __future__ import annotations

import asyncio
import json
import os
import tempfile
import unittest
from decimal import Decimal

from tests.fakes import FakeNotifier
from trading.engine_state import EngineState, StateStore
from utils.state_file import StateFileCorruptError, atomic_write_json, read_json_object


class StateStoreTests(unittest.TestCase):
    def test_missing_file_loads_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = StateStore(os.path.join(tmp_dir, "state.json"))
            state = store.load()
        self.assertEqual(state.daily_volume, Decimal("0"))
        self.assertFalse(state.is_circuit_broken)
        self.assertIsNone(state.last_price)
        self.assertEqual(state.recovery_attempts, 0)

    def test_corrupt_file_loads_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = os.path.join(tmp_dir, "state.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("{not json")
            state = StateStore(path).load()
        self.assertEqual(state.daily_volume, Decimal("0"))
        self.assertFalse(state.is_circuit_broken)

    def test_non_object_json_is_corrupt(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = os.path.join(tmp_dir, "state.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("[1, 2, 3]")
            with self.assertRaises(StateFileCorruptError):
                read_json_object(path)
            self.assertFalse(StateStore(path).load().is_circuit_broken)

    def test_save_then_load_keeps_decimal_precision(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = os.path.join(tmp_dir, "nested", "state.json")
            store = StateStore(path)
            state = EngineState(
                daily_volume=Decimal("3.141592"),
                last_price=Decimal("1.000001"),
                is_circuit_broken=True,
                recovery_attempts=2,
                wallets=["0xabc"],
                volume_day="2026-01-02",
            )
            self.assertTrue(asyncio.run(store.save(state)))
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            loaded = store.load()
        self.assertEqual(raw["daily_volume"], "3.141592")
        self.assertEqual(loaded.daily_volume, Decimal("3.141592"))
        self.assertEqual(loaded.last_price, Decimal("1.000001"))
        self.assertTrue(loaded.is_circuit_broken)
        self.assertEqual(loaded.recovery_attempts, 2)
        self.assertEqual(loaded.wallets, ["0xabc"])
        self.assertEqual(loaded.volume_day, "2026-01-02")

    def test_negative_volume_is_clamped_on_load(self) -> None:
        state = EngineState.from_payload({"daily_volume": "-5", "last_price": "0"})
        self.assertEqual(state.daily_volume, Decimal("0"))
        self.assertIsNone(state.last_price)

    def test_legacy_wallet_rows_are_flattened(self) -> None:
        state = EngineState.from_payload({"wallets": [{"address": "0xa", "balance": "1"}, "0xb"]})
        self.assertEqual(state.wallets, ["0xa", "0xb"])

    def test_save_failure_alerts_and_does_not_raise(self) -> None:
        notifier = FakeNotifier()
        with tempfile.TemporaryDirectory() as tmp_dir:
            # A directory at the target path makes the final replace fail.
            path = os.path.join(tmp_dir, "state.json")
            os.makedirs(os.path.join(path, "child"))
            store = StateStore(path, notifier)
            ok = asyncio.run(store.save(EngineState()))
        self.assertFalse(ok)
        self.assertEqual(notifier.categories(), ["State Save Failed"])

    def test_atomic_write_leaves_no_temp_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = os.path.join(tmp_dir, "state.json")
            atomic_write_json(path, {"a": 1})
            atomic_write_json(path, {"a": 2})
            self.assertEqual(os.listdir(tmp_dir), ["state.json"])
            self.assertEqual(read_json_object(path), {"a": 2})


if __name__ == "__main__":
    unittest.main()
