"""Web3 client for the Uniswap V3 pair the engine trades (reads, quotes, approvals, swaps)."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Any, Callable

from eth_account import Account
from web3 import HTTPProvider, Web3
from web3.contract import Contract

import config
from utils.addressing import is_zero_address, to_checksum

logger = logging.getLogger(__name__)

MAX_UINT256 = (2**256) - 1

ERC20_ABI: list[dict[str, Any]] = [
    {
        "name": "decimals",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "allowance",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "approve",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "spender", "type": "address"}, {"name": "value", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "transfer",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "recipient", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
]

FACTORY_ABI: list[dict[str, Any]] = [
    {
        "name": "getPool",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "tokenA", "type": "address"},
            {"name": "tokenB", "type": "address"},
            {"name": "fee", "type": "uint24"},
        ],
        "outputs": [{"name": "pool", "type": "address"}],
    },
]

QUOTER_ABI: list[dict[str, Any]] = [
    {
        "name": "quoteExactInputSingle",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "tokenIn", "type": "address"},
            {"name": "tokenOut", "type": "address"},
            {"name": "fee", "type": "uint24"},
            {"name": "amountIn", "type": "uint256"},
            {"name": "sqrtPriceLimitX96", "type": "uint160"},
        ],
        "outputs": [{"name": "amountOut", "type": "uint256"}],
    },
]

ROUTER_ABI: list[dict[str, Any]] = [
    {
        "name": "exactInputSingle",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [
            {
                "name": "params",
                "type": "tuple",
                "components": [
                    {"name": "tokenIn", "type": "address"},
                    {"name": "tokenOut", "type": "address"},
                    {"name": "fee", "type": "uint24"},
                    {"name": "recipient", "type": "address"},
                    {"name": "deadline", "type": "uint256"},
                    {"name": "amountIn", "type": "uint256"},
                    {"name": "amountOutMinimum", "type": "uint256"},
                    {"name": "sqrtPriceLimitX96", "type": "uint160"},
                ],
            }
        ],
        "outputs": [{"name": "amountOut", "type": "uint256"}],
    },
]


class ChainClientError(RuntimeError):
    """Raised when an RPC read or a transaction fails."""


@dataclass
class TxReceipt:
    tx_hash: str
    status: int
    gas_used: int = 0
    block_number: int = 0


@dataclass
class SwapParams:
    token_in: str
    token_out: str
    fee: int
    recipient: str
    deadline: int
    amount_in: Decimal
    amount_out_minimum: Decimal
    gas_limit: int


def to_raw(amount: Decimal, decimals: int) -> int:
    scaled = Decimal(amount) * (Decimal(10) ** int(decimals))
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_raw(raw: int, decimals: int) -> Decimal:
    return Decimal(int(raw)) / (Decimal(10) ** int(decimals))


class ChainClient:
    def __init__(self, rpc_url: str | None = None) -> None:
        self.rpc_url = (rpc_url or "").strip()
        self.w3: Web3 | None = None
        self.factory: Contract | None = None
        self.quoter: Contract | None = None
        self.router: Contract | None = None
        self.router_address = ""
        self._decimals: dict[str, int] = {}

    async def connect(self) -> None:
        await self._call("connect", self._connect_blocking)

    def _connect_blocking(self) -> None:
        rpc = self.rpc_url or config.active_rpc_url()
        if not rpc:
            raise ChainClientError(f"RPC url is empty for network={config.NETWORK}")
        w3 = Web3(HTTPProvider(rpc, request_kwargs={"timeout": config.RPC_TIMEOUT_SECONDS}))
        if not w3.is_connected():
            raise ChainClientError(f"Web3 not connected rpc={rpc}")
        self.w3 = w3
        self.router_address = to_checksum(config.UNISWAP_V3_ROUTER)
        self.factory = w3.eth.contract(address=to_checksum(config.UNISWAP_V3_FACTORY), abi=FACTORY_ABI)
        self.quoter = w3.eth.contract(address=to_checksum(config.UNISWAP_V3_QUOTER), abi=QUOTER_ABI)
        self.router = w3.eth.contract(address=self.router_address, abi=ROUTER_ABI)
        self._decimals.clear()
        for token in (config.BASE_TOKEN_ADDRESS, config.QUOTE_TOKEN_ADDRESS):
            self._token_decimals(token)
        logger.info(
            "CHAIN_CONNECT network=%s chain_id=%s router=%s decimals=%s",
            config.NETWORK,
            w3.eth.chain_id,
            self.router_address,
            self._decimals,
        )

    async def _call(self, op_name: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except ChainClientError:
            raise
        except Exception as exc:
            raise ChainClientError(f"{op_name} failed: {exc}") from exc

    def _web3(self) -> Web3:
        if self.w3 is None:
            raise ChainClientError("chain client is not connected")
        return self.w3

    def _erc20(self, token: str) -> Contract:
        return self._web3().eth.contract(address=to_checksum(token), abi=ERC20_ABI)

    def _token_decimals(self, token: str) -> int:
        key = to_checksum(token)
        if key not in self._decimals:
            self._decimals[key] = int(self._erc20(key).functions.decimals().call())
        return self._decimals[key]

    @staticmethod
    def address_of(private_key: str) -> str:
        return Account.from_key(private_key).address

    # Reads

    async def get_pool_address(self, token_a: str, token_b: str, fee: int | None = None) -> str | None:
        def _read() -> str | None:
            if self.factory is None:
                raise ChainClientError("chain client is not connected")
            pool_fee = int(fee if fee is not None else config.UNISWAP_POOL_FEE)
            pool = self.factory.functions.getPool(to_checksum(token_a), to_checksum(token_b), pool_fee).call()
            return None if is_zero_address(pool) else to_checksum(pool)

        return await self._call("get_pool_address", _read)

    async def get_reserves(self, pool: str, token_a: str, token_b: str) -> tuple[Decimal, Decimal]:
        def _read() -> tuple[Decimal, Decimal]:
            pool_addr = to_checksum(pool)
            raw_a = int(self._erc20(token_a).functions.balanceOf(pool_addr).call())
            raw_b = int(self._erc20(token_b).functions.balanceOf(pool_addr).call())
            return from_raw(raw_a, self._token_decimals(token_a)), from_raw(raw_b, self._token_decimals(token_b))

        return await self._call("get_reserves", _read)

    async def quote(self, amount_in: Decimal, path: tuple[str, str]) -> Decimal:
        def _read() -> Decimal:
            if self.quoter is None:
                raise ChainClientError("chain client is not connected")
            token_in, token_out = path
            raw_in = to_raw(amount_in, self._token_decimals(token_in))
            if raw_in <= 0:
                raise ChainClientError(f"quote amount rounds to zero amount_in={amount_in}")
            raw_out = self.quoter.functions.quoteExactInputSingle(
                to_checksum(token_in),
                to_checksum(token_out),
                int(config.UNISWAP_POOL_FEE),
                raw_in,
                0,
            ).call()
            return from_raw(int(raw_out), self._token_decimals(token_out))

        return await self._call("quote", _read)

    async def get_balance(self, address: str, token: str | None = None) -> Decimal:
        def _read() -> Decimal:
            owner = to_checksum(address)
            if token is None:
                wei = self._web3().eth.get_balance(owner)
                return Decimal(str(self._web3().from_wei(wei, "ether")))
            raw = int(self._erc20(token).functions.balanceOf(owner).call())
            return from_raw(raw, self._token_decimals(token))

        return await self._call("get_balance", _read)

    async def get_allowance(self, token: str, owner: str, spender: str) -> Decimal:
        def _read() -> Decimal:
            raw = int(self._erc20(token).functions.allowance(to_checksum(owner), to_checksum(spender)).call())
            return from_raw(raw, self._token_decimals(token))

        return await self._call("get_allowance", _read)

    async def get_gas_price(self) -> Decimal:
        def _read() -> Decimal:
            wei = int(self._web3().eth.gas_price or 0)
            return Decimal(str(self._web3().from_wei(wei, "gwei")))

        return await self._call("get_gas_price", _read)

    # Writes

    async def approve(self, token: str, spender: str, private_key: str, amount: Decimal | None = None) -> TxReceipt:
        def _write() -> TxReceipt:
            account = Account.from_key(private_key)
            raw = MAX_UINT256 if amount is None else to_raw(amount, self._token_decimals(token))
            tx = self._erc20(token).functions.approve(to_checksum(spender), raw).build_transaction(
                self._tx_params(account.address)
            )
            return self._send_and_wait(tx, account, int(config.APPROVAL_GAS_LIMIT))

        return await self._call("approve", _write)

    async def swap(self, params: SwapParams, private_key: str) -> TxReceipt:
        def _write() -> TxReceipt:
            if self.router is None:
                raise ChainClientError("chain client is not connected")
            account = Account.from_key(private_key)
            raw_in = to_raw(params.amount_in, self._token_decimals(params.token_in))
            raw_min_out = to_raw(params.amount_out_minimum, self._token_decimals(params.token_out))
            tx = self.router.functions.exactInputSingle(
                (
                    to_checksum(params.token_in),
                    to_checksum(params.token_out),
                    int(params.fee),
                    to_checksum(params.recipient),
                    int(params.deadline),
                    raw_in,
                    raw_min_out,
                    0,
                )
            ).build_transaction(self._tx_params(account.address))
            return self._send_and_wait(tx, account, int(params.gas_limit))

        return await self._call("swap", _write)

    async def transfer_native(self, to: str, amount: Decimal, private_key: str) -> TxReceipt:
        def _write() -> TxReceipt:
            account = Account.from_key(private_key)
            tx = self._tx_params(account.address, value_wei=to_raw(amount, 18))
            tx["to"] = to_checksum(to)
            return self._send_and_wait(tx, account, int(config.GAS_LIMIT))

        return await self._call("transfer_native", _write)

    async def transfer_token(self, token: str, to: str, amount: Decimal, private_key: str) -> TxReceipt:
        def _write() -> TxReceipt:
            account = Account.from_key(private_key)
            raw = to_raw(amount, self._token_decimals(token))
            tx = self._erc20(token).functions.transfer(to_checksum(to), raw).build_transaction(
                self._tx_params(account.address)
            )
            return self._send_and_wait(tx, account, int(config.GAS_LIMIT))

        return await self._call("transfer_token", _write)

    def _tx_params(self, sender: str, value_wei: int = 0) -> dict[str, Any]:
        w3 = self._web3()
        pending_nonce = w3.eth.get_transaction_count(sender, "pending")
        latest = w3.eth.get_block("latest")
        base_fee = int(latest.get("baseFeePerGas") or 0)
        priority = int(w3.to_wei(max(0.0, float(config.PRIORITY_FEE_GWEI)), "gwei"))
        cap = int(w3.to_wei(max(0.0, float(config.MAX_GAS_PRICE_GWEI)), "gwei"))
        if cap <= 0:
            # Never send with an unbounded fee cap.
            cap = int(w3.to_wei(1, "gwei"))

        observed_gas_price = int(w3.eth.gas_price or 0)
        if observed_gas_price > cap:
            obs_gwei = float(w3.from_wei(observed_gas_price, "gwei"))
            raise ChainClientError(
                f"gas_price_too_high observed_gwei={obs_gwei:.3f} cap_gwei={config.MAX_GAS_PRICE_GWEI:.3f}"
            )

        max_fee = min(cap, max(observed_gas_price, (base_fee * 2) + priority))
        return {
            "from": sender,
            "chainId": int(config.EVM_CHAIN_ID),
            "nonce": pending_nonce,
            "value": int(value_wei),
            "maxFeePerGas": max_fee,
            "maxPriorityFeePerGas": min(priority, max_fee),
            "type": 2,
        }

    def _send_and_wait(self, tx: dict[str, Any], account: Any, gas_cap: int) -> TxReceipt:
        w3 = self._web3()
        estimate = int(w3.eth.estimate_gas(tx))
        if gas_cap > 0 and estimate > gas_cap:
            raise ChainClientError(f"gas_estimate_too_high gas={estimate} cap={gas_cap}")
        gas_limit = int(estimate * 1.5)
        if gas_cap > 0:
            gas_limit = min(gas_limit, gas_cap)
        tx["gas"] = gas_limit

        balance = int(w3.eth.get_balance(tx["from"]))
        worst_cost = (gas_limit * int(tx.get("maxFeePerGas") or 0)) + int(tx.get("value") or 0)
        if int(worst_cost * 1.2) > balance:
            raise ChainClientError(
                f"insufficient_balance_for_tx have_wei={balance} want_wei={int(worst_cost * 1.2)} gas={gas_limit}"
            )

        signed = account.sign_transaction(tx)
        raw_tx = getattr(signed, "raw_transaction", None)
        if raw_tx is None:
            raw_tx = getattr(signed, "rawTransaction", None)
        if raw_tx is None:
            raise ChainClientError("signed_tx_missing_raw_bytes")
        tx_hash = w3.eth.send_raw_transaction(raw_tx)
        logger.info("TX_SENT hash=%s from=%s gas=%s", tx_hash.hex(), tx["from"], gas_limit)
        receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=int(config.TX_TIMEOUT_SECONDS))
        if int(receipt.status) != 1:
            raise ChainClientError(f"tx_failed hash={tx_hash.hex()}")
        return TxReceipt(
            tx_hash=tx_hash.hex(),
            status=int(receipt.status),
            gas_used=int(receipt.get("gasUsed") or 0),
            block_number=int(receipt.get("blockNumber") or 0),
        )


def swap_deadline() -> int:
    return int(time.time()) + int(config.SWAP_DEADLINE_SECONDS)
