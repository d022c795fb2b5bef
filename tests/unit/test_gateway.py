"""Web3 wallet gateway with the JSON-RPC side stubbed out."""

from __future__ import annotations

from decimal import Decimal

import pytest

from paxrewards.config import Settings
from paxrewards.errors import GatewaySendFailure
from paxrewards.payouts.gateway import Web3WalletGateway

PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
RECIPIENT = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


class StubEth:
    def __init__(self, base_fee: int | None = 1_000_000_000) -> None:
        self.base_fee = base_fee
        self.raw: list[bytes] = []
        self.fail_with: Exception | None = None

    async def get_balance(self, address):
        return 2 * 10**18

    async def get_transaction_count(self, address, block):
        if self.fail_with is not None:
            raise self.fail_with
        return 7

    async def get_block(self, block):
        return {} if self.base_fee is None else {"baseFeePerGas": self.base_fee}

    async def _fee(self):
        return 1_000_000

    @property
    def max_priority_fee(self):
        return self._fee()

    @property
    def gas_price(self):
        return self._fee()

    async def send_raw_transaction(self, raw):
        self.raw.append(raw)
        return b"\xab" * 32


@pytest.fixture
def gateway() -> Web3WalletGateway:
    gw = Web3WalletGateway("http://localhost:8545", PRIVATE_KEY, 80000)
    gw.w3.eth = StubEth()
    return gw


def test_requires_private_key():
    with pytest.raises(ValueError):
        Web3WalletGateway("http://localhost:8545", "", 80000)


def test_address_derived_from_key(gateway):
    assert gateway.address == ADDRESS


def test_from_settings():
    settings = Settings(server_wallet_private_key=PRIVATE_KEY, chain_id=80000)
    gw = Web3WalletGateway.from_settings(settings)
    assert gw.address == ADDRESS
    assert gw.chain_id == 80000


@pytest.mark.asyncio
async def test_balance_in_pax(gateway):
    assert await gateway.get_balance() == Decimal("2")


@pytest.mark.asyncio
async def test_send_signs_and_returns_hash(gateway):
    tx_hash = await gateway.send_native(RECIPIENT, Decimal("0.011"))
    assert tx_hash == "0x" + "ab" * 32
    assert len(gateway.w3.eth.raw) == 1


@pytest.mark.asyncio
async def test_send_on_chain_without_base_fee(gateway):
    gateway.w3.eth.base_fee = None
    tx_hash = await gateway.send_native(RECIPIENT, Decimal("1"))
    assert tx_hash.startswith("0x")


@pytest.mark.asyncio
async def test_rpc_error_wrapped(gateway):
    gateway.w3.eth.fail_with = ConnectionError("connection refused")
    with pytest.raises(GatewaySendFailure, match="connection refused"):
        await gateway.send_native(RECIPIENT, Decimal("1"))
    assert gateway.w3.eth.raw == []
