"""Custodial wallet gateway: balance reads and native PAX transfers."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Protocol

from eth_account import Account
from eth_utils import to_checksum_address, to_hex
from web3 import AsyncWeb3, Web3

from paxrewards.config import Settings
from paxrewards.errors import GatewaySendFailure

logger = logging.getLogger(__name__)


class CustodialWalletGateway(Protocol):
    """What the payout processor needs from the server wallet."""

    @property
    def address(self) -> str: ...

    async def get_balance(self) -> Decimal: ...

    async def send_native(self, to: str, amount: Decimal) -> str: ...


class Web3WalletGateway:
    """Server wallet backed by a JSON-RPC node and a locally held key.

    Transactions are signed locally and submitted raw; the call returns as
    soon as the node accepts the transaction hash. Sends are serialized on a
    lock so pending nonces are never reused.
    """

    def __init__(self, rpc_url: str, private_key: str, chain_id: int, gas_limit: int = 21000) -> None:
        if not private_key:
            msg = "Server wallet private key is not configured"
            raise ValueError(msg)
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self._account = Account.from_key(private_key)
        self.chain_id = chain_id
        self.gas_limit = gas_limit
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> Web3WalletGateway:
        return cls(
            settings.rpc_url,
            settings.server_wallet_private_key,
            settings.chain_id,
            settings.native_transfer_gas_limit,
        )

    @property
    def address(self) -> str:
        return self._account.address

    async def get_balance(self) -> Decimal:
        wei = await self.w3.eth.get_balance(self.address)
        return Decimal(Web3.from_wei(wei, "ether"))

    async def _fee_params(self) -> dict[str, int]:
        """EIP-1559 fee fields, or a legacy gasPrice when the chain has no base fee."""
        latest = await self.w3.eth.get_block("latest")
        base_fee = latest.get("baseFeePerGas")
        if base_fee is None:
            return {"gasPrice": await self.w3.eth.gas_price}
        try:
            priority_fee = int(await self.w3.eth.max_priority_fee)
        except Exception:
            priority_fee = int(base_fee // 10)
        return {
            "maxPriorityFeePerGas": priority_fee,
            "maxFeePerGas": base_fee * 2 + priority_fee,
        }

    async def send_native(self, to: str, amount: Decimal) -> str:
        """Send ``amount`` PAX to ``to`` and return the transaction hash."""
        async with self._lock:
            try:
                nonce = await self.w3.eth.get_transaction_count(self.address, "pending")
                tx: dict[str, Any] = {
                    "to": to_checksum_address(to),
                    "value": Web3.to_wei(amount, "ether"),
                    "gas": self.gas_limit,
                    "nonce": nonce,
                    "chainId": self.chain_id,
                    **await self._fee_params(),
                }
                signed = self._account.sign_transaction(tx)
                tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
            except Exception as exc:
                raise GatewaySendFailure(f"Transfer of {amount} PAX to {to} failed: {exc}") from exc

        tx_hash_hex = to_hex(tx_hash)
        logger.info("Sent %s PAX to %s (tx=%s, nonce=%d)", amount, to, tx_hash_hex, nonce)
        return tx_hash_hex
