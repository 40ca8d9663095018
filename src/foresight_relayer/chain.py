"""Connection to the node the relayer submits through.

Wraps an ``AsyncWeb3`` handle and turns node behaviour into the relayer's
error taxonomy: refusals before inclusion become ``SubmissionRejected``,
reverted receipts become ``ExecutionReverted``, unreachable endpoints become
``TransportFailure``.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, TypeVar

import aiohttp
from hexbytes import HexBytes
from web3 import AsyncWeb3
from web3.exceptions import (
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
    Web3RPCError,
)
from web3.types import TxParams, TxReceipt

from .exceptions import (
    ConfirmationTimeout,
    ExecutionReverted,
    SubmissionRejected,
    TransportFailure,
)
from .models import PendingTransaction, SignedTransaction

if TYPE_CHECKING:
    from .entry_point import EntryPointBinding

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Node messages meaning the local nonce counter disagrees with the node
NONCE_CONFLICT_MARKERS = (
    "nonce too low",
    "nonce too high",
    "invalid nonce",
    "already known",
    "replacement transaction underpriced",
    "known transaction",
)

# AsyncHTTPProvider surfaces dropped connections and HTTP failures as aiohttp errors
TRANSPORT_ERRORS = (
    asyncio.TimeoutError,
    OSError,
    aiohttp.ClientError,
    ProviderConnectionError,
)


def _error_message(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return str(message)


def is_nonce_conflict(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in NONCE_CONFLICT_MARKERS)


class ChainConnection:
    """Broadcasts signed transactions and waits for their receipts."""

    def __init__(self, rpc_url: str, request_timeout: float = 30, w3: AsyncWeb3 | None = None) -> None:
        """
        Initialize the connection.

        Args:
            rpc_url: HTTP(S) RPC endpoint of the node
            request_timeout: Seconds allowed for any single RPC call
            w3: Pre-built web3 handle, mainly for tests

        Raises:
            ValueError: If no RPC URL is given
        """
        if not rpc_url:
            raise ValueError("RPC URL is required")

        self.rpc_url = rpc_url
        self.request_timeout = request_timeout
        self.w3: AsyncWeb3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self._chain_id: int | None = None

    async def _rpc(self, call: Awaitable[T], action: str) -> T:
        """Run one RPC call under the request timeout, mapping transport errors."""
        try:
            return await asyncio.wait_for(call, timeout=self.request_timeout)
        except TRANSPORT_ERRORS as exc:
            raise TransportFailure(
                f"Node unreachable during {action}: {exc or type(exc).__name__}",
                endpoint=self.rpc_url,
            ) from exc

    async def is_connected(self) -> bool:
        try:
            return bool(await self._rpc(self.w3.is_connected(), "connection check"))
        except TransportFailure:
            return False

    async def chain_id(self) -> int:
        """Chain ID of the node, fetched once."""
        if self._chain_id is None:
            self._chain_id = int(await self._rpc(self.w3.eth.chain_id, "chain id lookup"))
            logger.info(f"Connected to chain {self._chain_id} via {self.rpc_url}")
        return self._chain_id

    async def gas_price(self) -> int:
        return int(await self._rpc(self.w3.eth.gas_price, "gas price lookup"))

    async def pending_nonce(self, address: str) -> int:
        """Next nonce for ``address`` counting transactions still in the mempool."""
        return int(
            await self._rpc(
                self.w3.eth.get_transaction_count(address, "pending"), "nonce lookup"
            )
        )

    async def estimate_gas(self, tx: TxParams, binding: "EntryPointBinding | None" = None) -> int:
        """
        Estimate gas for ``tx``.

        Raises:
            SubmissionRejected: If the node predicts a revert or refuses the call
        """
        try:
            return int(await self._rpc(self.w3.eth.estimate_gas(tx), "gas estimation"))
        except ContractLogicError as exc:
            reason = self._revert_reason(exc, binding)
            raise SubmissionRejected(reason, details={"stage": "estimate_gas"}) from exc
        except Web3RPCError as exc:
            message = _error_message(exc)
            raise SubmissionRejected(message, details={"stage": "estimate_gas"}) from exc

    async def submit(self, signed: SignedTransaction, tx_params: TxParams | None = None) -> PendingTransaction:
        """
        Broadcast a signed transaction.

        Returns:
            PendingTransaction handle for ``wait``

        Raises:
            SubmissionRejected: If the node refuses the transaction
            TransportFailure: If the node could not be reached
        """
        try:
            tx_hash = await self._rpc(
                self.w3.eth.send_raw_transaction(signed.raw_transaction), "broadcast"
            )
        except Web3RPCError as exc:
            message = _error_message(exc)
            logger.warning(f"Node rejected transaction nonce={signed.nonce}: {message}")
            raise SubmissionRejected(
                message,
                nonce_conflict=is_nonce_conflict(message),
                details={"nonce": signed.nonce},
            ) from exc

        tx_hex = HexBytes(tx_hash).to_0x_hex()
        logger.info(f"Transaction broadcast: {tx_hex} (nonce={signed.nonce})")
        return PendingTransaction(tx_hash=tx_hex, nonce=signed.nonce, tx_params=dict(tx_params or {}))

    async def wait(
        self,
        pending: PendingTransaction,
        timeout: float,
        binding: "EntryPointBinding | None" = None,
    ) -> TxReceipt:
        """
        Block until ``pending`` is mined.

        Returns:
            The receipt of a successful transaction

        Raises:
            ExecutionReverted: If the transaction was mined with status 0
            ConfirmationTimeout: If no receipt arrived within ``timeout``
            TransportFailure: If the node could not be reached
        """
        try:
            receipt: TxReceipt = await self.w3.eth.wait_for_transaction_receipt(
                HexBytes(pending.tx_hash), timeout=timeout
            )
        except TimeExhausted:
            raise ConfirmationTimeout(pending.tx_hash, pending.nonce, timeout) from None
        except TRANSPORT_ERRORS as exc:
            raise TransportFailure(
                f"Node unreachable while waiting for {pending.tx_hash}: {exc or type(exc).__name__}",
                endpoint=self.rpc_url,
            ) from exc

        if (status := receipt.get("status", 0)) == 1:
            logger.info(f"Transaction confirmed in block {receipt['blockNumber']}: {pending.tx_hash}")
            return receipt

        logger.error(f"Transaction {pending.tx_hash} reverted with status={status}")
        reason = await self.revert_reason(pending, receipt["blockNumber"], binding)
        raise ExecutionReverted(
            reason,
            tx_hash=pending.tx_hash,
            block_number=receipt["blockNumber"],
            details={"nonce": pending.nonce},
        )

    async def revert_reason(
        self,
        pending: PendingTransaction,
        block_number: int,
        binding: "EntryPointBinding | None" = None,
    ) -> str:
        """Replay a reverted transaction with ``eth_call`` to recover its reason."""
        params = pending.tx_params
        if not params:
            return "execution reverted"

        call: TxParams = {
            key: params[key] for key in ("from", "to", "data", "gas", "value") if key in params
        }
        try:
            await self._rpc(self.w3.eth.call(call, block_identifier=block_number), "revert replay")
        except ContractLogicError as exc:
            return self._revert_reason(exc, binding)
        except (Web3RPCError, TransportFailure) as exc:
            logger.warning(f"Could not replay {pending.tx_hash} for revert reason: {exc}")
            return "execution reverted"

        logger.warning(f"Replay of {pending.tx_hash} did not revert at block {block_number}")
        return "execution reverted"

    @staticmethod
    def _revert_reason(exc: ContractLogicError, binding: "EntryPointBinding | None") -> str:
        data = getattr(exc, "data", None)
        if binding is not None and isinstance(data, (str, bytes)) and data:
            try:
                return binding.decode_revert(data)
            except ValueError:
                pass
        return _error_message(exc)

    async def close(self) -> None:
        """Release the provider's HTTP session."""
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
