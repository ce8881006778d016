"""Fixed pool of funding identities with round-robin rotation."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from trading.key_store import KeyStore, Wallet
from utils.addressing import normalize_address

logger = logging.getLogger(__name__)


class EmptyPoolError(RuntimeError):
    """Raised when a wallet is requested from a pool with no identities."""


class FundingError(RuntimeError):
    """Raised when the funder identity cannot cover the bootstrap top-up."""


class WalletPool:
    def __init__(self, key_store: KeyStore, chain_client: Any = None, notifier: Any = None) -> None:
        self.key_store = key_store
        self.chain = chain_client
        self.notifier = notifier
        self._wallets: list[Wallet] = []
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._wallets)

    @property
    def wallets(self) -> list[Wallet]:
        return list(self._wallets)

    @property
    def addresses(self) -> list[str]:
        return [w.address for w in self._wallets]

    def _add(self, wallet: Wallet) -> bool:
        key = normalize_address(wallet.address)
        if any(normalize_address(w.address) == key for w in self._wallets):
            return False
        self._wallets.append(wallet)
        return True

    def load(self) -> list[Wallet]:
        for wallet in self.key_store.list_identities():
            self._add(wallet)
        return self.wallets

    def ensure_minimum(self, n: int) -> int:
        missing = max(0, int(n) - len(self._wallets))
        created = 0
        for _ in range(missing):
            wallet = self.key_store.create_identity()
            if not self._add(wallet):
                raise RuntimeError(f"key store returned duplicate address {wallet.address}")
            created += 1
        if created:
            logger.info("WALLET_POOL created=%s total=%s", created, len(self._wallets))
        return created

    def next(self) -> Wallet:
        if not self._wallets:
            raise EmptyPoolError("wallet pool is empty")
        index = self._cursor % len(self._wallets)
        self._cursor = (index + 1) % len(self._wallets)
        return self._wallets[index]

    def find(self, address: str) -> Wallet | None:
        key = normalize_address(address)
        for wallet in self._wallets:
            if normalize_address(wallet.address) == key:
                return wallet
        return None

    def credential(self, address: str) -> str:
        return self.key_store.get_credential(address)

    async def fund_from(
        self,
        funder_key: str,
        *,
        quote_token: str,
        native_floor: Decimal,
        quote_floor: Decimal,
    ) -> int:
        """Top up every identity below the native/quote floor from the funder. Returns transfers sent."""
        funder = self.chain.address_of(funder_key)
        funder_native = await self.chain.get_balance(funder)
        funder_quote = await self.chain.get_balance(funder, quote_token)
        count = Decimal(len(self._wallets))
        logger.info(
            "FUNDING funder=%s native=%s quote=%s wallets=%s",
            funder,
            funder_native,
            funder_quote,
            len(self._wallets),
        )
        if funder_native < native_floor * count:
            raise FundingError(f"Insufficient native balance in funder. Need: {native_floor * count}, Have: {funder_native}")
        if funder_quote < quote_floor * count:
            raise FundingError(f"Insufficient quote balance in funder. Need: {quote_floor * count}, Have: {funder_quote}")

        sent = 0
        for wallet in self._wallets:
            native = await self.chain.get_balance(wallet.address)
            if native < native_floor:
                receipt = await self.chain.transfer_native(wallet.address, native_floor - native, funder_key)
                logger.info("FUNDING native wallet=%s amount=%s tx=%s", wallet.address, native_floor - native, receipt.tx_hash)
                sent += 1
            quote = await self.chain.get_balance(wallet.address, quote_token)
            if quote < quote_floor:
                receipt = await self.chain.transfer_token(quote_token, wallet.address, quote_floor - quote, funder_key)
                logger.info("FUNDING quote wallet=%s amount=%s tx=%s", wallet.address, quote_floor - quote, receipt.tx_hash)
                sent += 1
        return sent

    async def approve_spender(self, tokens: list[str], spender: str) -> int:
        """Grant `spender` an unlimited allowance for each token where none exists yet."""
        approved = 0
        for wallet in self._wallets:
            for token in tokens:
                allowance = await self.chain.get_allowance(token, wallet.address, spender)
                if allowance > 0:
                    continue
                receipt = await self.chain.approve(token, spender, self.credential(wallet.address))
                logger.info("APPROVE wallet=%s token=%s tx=%s", wallet.address, token, receipt.tx_hash)
                approved += 1
        return approved

    async def check_balances(
        self,
        *,
        base_token: str,
        native_alert: Decimal,
        base_alert: Decimal,
        base_symbol: str = "base token",
    ) -> int:
        alerts = 0
        for wallet in self._wallets:
            native = await self.chain.get_balance(wallet.address)
            if native_alert > 0 and native < native_alert:
                await self.notifier.send("Low Balance", f"Wallet {wallet.address} has low native balance: {native}")
                alerts += 1
            if base_alert > 0:
                base = await self.chain.get_balance(wallet.address, base_token)
                if base < base_alert:
                    await self.notifier.send(
                        "Low Token Balance",
                        f"Wallet {wallet.address} has low {base_symbol} balance: {base}",
                    )
                    alerts += 1
        return alerts
