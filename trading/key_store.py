"""File-backed key store: one `<address>.json` per funding identity."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass

from eth_account import Account

from utils.addressing import normalize_address
from utils.state_file import atomic_write_json

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Wallet:
    address: str


class KeyStoreError(RuntimeError):
    """Raised when the wallet directory is unusable or a credential is missing."""


class KeyStore:
    def __init__(self, data_dir: str) -> None:
        self.data_dir = data_dir
        self._keys: dict[str, str] = {}

    def initialize_storage(self) -> None:
        """Create the wallet directory and verify it is writable."""
        try:
            os.makedirs(self.data_dir, mode=0o700, exist_ok=True)
            probe = os.path.join(self.data_dir, ".write_test")
            with open(probe, "w", encoding="utf-8") as f:
                f.write("test")
            os.remove(probe)
        except OSError as exc:
            raise KeyStoreError(f"wallet dir not writable path={self.data_dir} cwd={os.getcwd()}: {exc}") from exc
        logger.info("KEYSTORE storage ready path=%s", self.data_dir)

    def list_identities(self) -> list[Wallet]:
        if not os.path.isdir(self.data_dir):
            return []
        wallets: list[Wallet] = []
        seen: set[str] = set()
        for name in sorted(os.listdir(self.data_dir)):
            if not name.endswith(".json"):
                continue
            path = os.path.join(self.data_dir, name)
            try:
                with open(path, "r", encoding="utf-8-sig") as f:
                    data = json.load(f)
                account = Account.from_key(str(data["privateKey"]))
            except Exception as exc:
                logger.warning("KEYSTORE skip unreadable file=%s err=%s", path, exc)
                continue
            key = normalize_address(account.address)
            if key in seen:
                continue
            seen.add(key)
            self._keys[key] = str(data["privateKey"])
            wallets.append(Wallet(address=account.address))
        logger.info("KEYSTORE loaded wallets=%s", len(wallets))
        return wallets

    def create_identity(self) -> Wallet:
        account = Account.create()
        key = normalize_address(account.address)
        if key in self._keys:
            raise KeyStoreError(f"duplicate address generated {account.address}")
        private_key = account.key.hex()
        if not private_key.startswith("0x"):
            private_key = f"0x{private_key}"
        path = os.path.join(self.data_dir, f"{account.address}.json")
        atomic_write_json(path, {"address": account.address, "privateKey": private_key})
        try:
            os.chmod(path, 0o600)
        except OSError:
            pass
        self._keys[key] = private_key
        logger.info("KEYSTORE created wallet=%s", account.address)
        return Wallet(address=account.address)

    def get_credential(self, address: str) -> str:
        try:
            return self._keys[normalize_address(address)]
        except KeyError:
            raise KeyStoreError(f"no credential for {address}") from None
