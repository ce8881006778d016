from __future__ import annotations

from decimal import Decimal
from typing import Any

import config
from trading.chain_client import TxReceipt
from trading.key_store import KeyStoreError, Wallet


class ConfigPatchMixin:
    def setUp(self) -> None:
        super().setUp()
        self._cfg_old: dict[str, object] = {}

    def patch_cfg(self, **kwargs: object) -> None:
        for key, value in kwargs.items():
            if key not in self._cfg_old:
                self._cfg_old[key] = getattr(config, key, None)
            setattr(config, key, value)

    def tearDown(self) -> None:
        for key, value in self._cfg_old.items():
            setattr(config, key, value)
        super().tearDown()


BASE = "0x1111111111111111111111111111111111111111"
QUOTE = "0x2222222222222222222222222222222222222222"
ROUTER = "0x3333333333333333333333333333333333333333"
POOL = "0x4444444444444444444444444444444444444444"

PAIR_CFG: dict[str, object] = {
    "BASE_TOKEN_ADDRESS": BASE,
    "QUOTE_TOKEN_ADDRESS": QUOTE,
    "UNISWAP_V3_ROUTER": ROUTER,
    "UNISWAP_V3_FACTORY": "0x5555555555555555555555555555555555555555",
    "UNISWAP_V3_QUOTER": "0x6666666666666666666666666666666666666666",
}


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, category: str, message: str) -> int:
        self.sent.append((category, message))
        return 1

    async def close(self) -> None:
        return None

    def categories(self) -> list[str]:
        return [c for c, _ in self.sent]


class FakeStore:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.saves: list[dict[str, Any]] = []

    def load(self):
        from trading.engine_state import EngineState

        return EngineState()

    async def save(self, state) -> bool:
        self.saves.append(state.to_payload())
        return self.ok


class FakeKeyStore:
    def __init__(self, existing: int = 0) -> None:
        self._counter = 0
        self.created: list[Wallet] = []
        self._wallets: list[Wallet] = []
        for _ in range(existing):
            self._wallets.append(self._new())
        self.storage_ready = False

    def _new(self) -> Wallet:
        self._counter += 1
        return Wallet(address=f"0x{self._counter:040x}")

    def initialize_storage(self) -> None:
        self.storage_ready = True

    def list_identities(self) -> list[Wallet]:
        return list(self._wallets)

    def create_identity(self) -> Wallet:
        wallet = self._new()
        self._wallets.append(wallet)
        self.created.append(wallet)
        return wallet

    def get_credential(self, address: str) -> str:
        for wallet in self._wallets:
            if wallet.address.lower() == address.lower():
                return f"key-{wallet.address}"
        raise KeyStoreError(f"no credential for {address}")


class FakeChainClient:
    """In-memory chain: balances keyed by (address, token or None), prices by path."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.pool: str | None = POOL
        self.reserves = (Decimal("1000"), Decimal("1000"))
        self.price = Decimal("1")
        self.balances: dict[tuple[str, str | None], Decimal] = {}
        self.allowances: dict[tuple[str, str, str], Decimal] = {}
        self.gas_price = Decimal("1")
        self.default_balance = Decimal("100")
        self.fail_on: dict[str, Exception] = {}
        self.swaps: list[Any] = []
        self.approvals: list[tuple[str, str]] = []
        self.transfers: list[tuple[str | None, str, Decimal]] = []
        self.connects = 0
        self._tx = 0

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        exc = self.fail_on.get(name)
        if exc is not None:
            raise exc

    def _receipt(self) -> TxReceipt:
        self._tx += 1
        return TxReceipt(tx_hash=f"0x{self._tx:064x}", status=1, gas_used=21000, block_number=self._tx)

    @staticmethod
    def address_of(private_key: str) -> str:
        return private_key.replace("key-", "")

    async def connect(self) -> None:
        self._enter("connect")
        self.connects += 1

    async def get_pool_address(self, token_a: str, token_b: str, fee: int | None = None) -> str | None:
        self._enter("get_pool_address")
        return self.pool

    async def get_reserves(self, pool: str, token_a: str, token_b: str) -> tuple[Decimal, Decimal]:
        self._enter("get_reserves")
        return self.reserves

    async def quote(self, amount_in: Decimal, path: tuple[str, str]) -> Decimal:
        self._enter("quote")
        if path[0].lower() == QUOTE.lower():
            return Decimal(amount_in) / self.price
        return Decimal(amount_in) * self.price

    async def get_balance(self, address: str, token: str | None = None) -> Decimal:
        self._enter("get_balance")
        return self.balances.get((address.lower(), token.lower() if token else None), self.default_balance)

    def set_balance(self, address: str, token: str | None, amount: str) -> None:
        self.balances[(address.lower(), token.lower() if token else None)] = Decimal(amount)

    async def get_allowance(self, token: str, owner: str, spender: str) -> Decimal:
        self._enter("get_allowance")
        return self.allowances.get((token.lower(), owner.lower(), spender.lower()), Decimal("0"))

    def set_allowance(self, token: str, owner: str, spender: str, amount: str) -> None:
        self.allowances[(token.lower(), owner.lower(), spender.lower())] = Decimal(amount)

    async def get_gas_price(self) -> Decimal:
        self._enter("get_gas_price")
        return self.gas_price

    async def approve(self, token: str, spender: str, private_key: str, amount: Decimal | None = None) -> TxReceipt:
        self._enter("approve")
        owner = self.address_of(private_key)
        self.approvals.append((owner, token))
        self.set_allowance(token, owner, spender, "1e30")
        return self._receipt()

    async def swap(self, params: Any, private_key: str) -> TxReceipt:
        self._enter("swap")
        self.swaps.append(params)
        return self._receipt()

    async def transfer_native(self, to: str, amount: Decimal, private_key: str) -> TxReceipt:
        self._enter("transfer_native")
        self.transfers.append((None, to, Decimal(amount)))
        return self._receipt()

    async def transfer_token(self, token: str, to: str, amount: Decimal, private_key: str) -> TxReceipt:
        self._enter("transfer_token")
        self.transfers.append((token, to, Decimal(amount)))
        return self._receipt()
