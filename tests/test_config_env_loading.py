from __future__ import annotations

import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path


class ConfigEnvLoadingTests(unittest.TestCase):
    def _run(self, code: str, bot_env_file: str) -> subprocess.CompletedProcess[str]:
        root = Path(__file__).resolve().parents[1]
        env = os.environ.copy()
        env["BOT_ENV_FILE"] = bot_env_file
        return subprocess.run(
            [sys.executable, "-c", code],
            cwd=str(root),
            env=env,
            capture_output=True,
            text=True,
        )

    def test_missing_bot_env_file_fails_fast(self) -> None:
        result = self._run("import config; print('ok')", "data/__definitely_missing_env_for_test__.env")
        self.assertNotEqual(result.returncode, 0)
        details = (result.stdout + "\n" + result.stderr).lower()
        self.assertIn("bot_env_file", details)
        self.assertIn("does not exist", details)

    def test_engine_keys_are_loaded_from_env(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            env_path = Path(tmpdir) / "bot.env"
            # BOM-prefixed files must still parse the first key.
            env_path.write_text(
                "﻿"
                + "\n".join(
                    [
                        "NETWORK=testnet",
                        "RPC_TESTNET_URL=http://testnet.local",
                        "MAX_DAILY_VOLUME=25",
                        "CIRCUIT_BREAKER_THRESHOLD=0.2",
                        "CIRCUIT_BREAKER_REPEAT_COOLDOWN=false",
                        "MIN_TRADE_AMOUNT=0.05",
                    ]
                )
                + "\n",
                encoding="utf-8",
            )
            result = self._run(
                (
                    "import config; "
                    "print(f\"{config.NETWORK}|{config.active_rpc_url()}|{config.MAX_DAILY_VOLUME}|"
                    "{config.CIRCUIT_BREAKER_THRESHOLD}|{config.CIRCUIT_BREAKER_REPEAT_COOLDOWN}|"
                    "{config.MIN_TRADE_AMOUNT}\")"
                ),
                str(env_path),
            )
        self.assertEqual(result.returncode, 0, msg=result.stderr)
        self.assertEqual(result.stdout.strip(), "testnet|http://testnet.local|25.0|0.2|False|0.05")


if __name__ == "__main__":
    unittest.main()
