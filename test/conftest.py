"""Shared fixtures for the Foresight Relayer tests."""

import asyncio
import random

import pytest
from hexbytes import HexBytes

from foresight_relayer.models import PendingTransaction, SignedTransaction
from foresight_relayer.relayer import RelayHandler
from foresight_relayer.signer import Signer

TEST_PRIVATE_KEY = "0x" + "1" * 64
SENDER = "0x" + "aa" * 20
ENTRY_POINT = "0x" + "ee" * 20


class FakeChain:
    """In-memory stand-in for ChainConnection.

    Records every nonce that reaches ``submit`` successfully, in broadcast
    order. Failures are injected by queueing exceptions in ``submit_errors``
    and ``wait_errors``.
    """

    def __init__(self, start_nonce: int = 7, chain_id: int = 31337, delay: float = 0.0):
        self.start_nonce = start_nonce
        self._chain_id = chain_id
        self.delay = delay
        self.broadcast_nonces: list[int] = []
        self.broadcast_params: list[dict] = []
        self.receipts: list[dict] = []
        self.submit_errors: list[Exception] = []
        self.wait_errors: list[Exception] = []
        self.pending_nonce_calls = 0
        self.closed = False

    async def _jitter(self) -> None:
        if self.delay:
            await asyncio.sleep(random.uniform(0, self.delay))

    async def chain_id(self) -> int:
        return self._chain_id

    async def gas_price(self) -> int:
        return 1_000_000_000

    async def estimate_gas(self, tx, binding=None) -> int:
        await self._jitter()
        return 250_000

    async def pending_nonce(self, address: str) -> int:
        self.pending_nonce_calls += 1
        return self.start_nonce + len(self.broadcast_nonces)

    async def submit(self, signed: SignedTransaction, tx_params=None) -> PendingTransaction:
        await self._jitter()
        if self.submit_errors:
            raise self.submit_errors.pop(0)
        self.broadcast_nonces.append(signed.nonce)
        self.broadcast_params.append(dict(tx_params or {}))
        return PendingTransaction(signed.tx_hash, signed.nonce, dict(tx_params or {}))

    async def wait(self, pending: PendingTransaction, timeout: float, binding=None) -> dict:
        await self._jitter()
        if self.wait_errors:
            raise self.wait_errors.pop(0)
        receipt = {
            "transactionHash": HexBytes(pending.tx_hash),
            "status": 1,
            "blockNumber": 1000 + pending.nonce,
        }
        self.receipts.append(receipt)
        return receipt

    async def is_connected(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


def make_user_op(**overrides) -> dict:
    """A well-formed v0.6 user operation as a client would send it."""
    op = {
        "sender": SENDER,
        "nonce": "0x5",
        "initCode": "0x",
        "callData": "0x",
        "callGasLimit": "0x186a0",
        "verificationGasLimit": 150000,
        "preVerificationGas": "21000",
        "maxFeePerGas": "0x3b9aca00",
        "maxPriorityFeePerGas": "0x3b9aca00",
        "paymasterAndData": "0x",
        "signature": "0x" + "11" * 65,
    }
    op.update(overrides)
    return op


def make_packed_user_op(**overrides) -> dict:
    """A well-formed v0.7 packed user operation."""
    op = {
        "sender": SENDER,
        "nonce": 5,
        "initCode": "0x",
        "callData": "0xdeadbeef",
        "accountGasLimits": "0x" + "00" * 16 + "00" * 13 + "0186a0",
        "preVerificationGas": 21000,
        "gasFees": "0x" + "00" * 28 + "3b9aca00",
        "paymasterAndData": "0x",
        "signature": "0x" + "22" * 65,
    }
    op.update(overrides)
    return op


@pytest.fixture
def fake_chain():
    return FakeChain()


@pytest.fixture
def signer():
    return Signer(TEST_PRIVATE_KEY)


@pytest.fixture
def relayer(signer, fake_chain):
    return RelayHandler(signer=signer, chain=fake_chain, receipt_timeout=5)


@pytest.fixture
def relay_body():
    return {"id": 1, "userOp": make_user_op(), "entryPointAddress": ENTRY_POINT}
