"""
Foresight Relayer implementation.

This module contains the relay handler that takes one submitted user
operation through validation, encoding, signing, broadcast and confirmation,
and renders the outcome as a JSON-RPC response.
"""

import logging
from enum import Enum
from typing import Any, Mapping

from hexbytes import HexBytes
from web3.types import TxParams

from .bundle_queue import BundleQueue
from .chain import ChainConnection
from .config import RelayerConfig
from .entry_point import EntryPointBinding
from .exceptions import (
    ConfirmationTimeout,
    ExecutionReverted,
    InvalidInput,
    RelayerError,
)
from .models import AnyUserOperation, RelayRequest, RelayResponse
from .signer import Signer

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"

INVALID_REQUEST = -32600
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
TRANSACTION_PENDING = -32000


class RelayState(str, Enum):
    """Stages a request moves through."""

    RECEIVED = "received"
    INVALID_INPUT = "invalid_input"
    VALIDATED = "validated"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    PENDING = "pending"


class RelayHandler:
    """
    Relays one user operation per call to its entry point.

    Components are injected so tests can substitute the chain; use
    ``from_config`` to build the production wiring.
    """

    def __init__(
        self,
        signer: Signer,
        chain: ChainConnection,
        receipt_timeout: float = 120,
        strict_jsonrpc_errors: bool = False,
    ) -> None:
        """
        Initialize the relay handler.

        Args:
            signer: Bundler account signer, also the beneficiary of every bundle
            chain: Connection to the node
            receipt_timeout: Seconds to wait for a receipt before answering pending
            strict_jsonrpc_errors: Report internal errors as -32603 instead of -32602
        """
        self.signer = signer
        self.chain = chain
        self.receipt_timeout = receipt_timeout
        self.internal_error_code = INTERNAL_ERROR if strict_jsonrpc_errors else INVALID_PARAMS
        self.queue: BundleQueue[AnyUserOperation] = BundleQueue(max_bundle_size=1)
        self.stats: dict[str, int] = {state.value: 0 for state in RelayState}

    @classmethod
    def from_config(cls, config: RelayerConfig) -> "RelayHandler":
        """
        Create a RelayHandler from loaded configuration.

        Raises:
            ValueError: If the private key cannot be loaded
        """
        signer = Signer(config.chain.private_key)
        chain = ChainConnection(config.chain.rpc_url, request_timeout=config.chain.request_timeout)
        logger.info(f"Bundler address: {signer.address}")
        return cls(
            signer=signer,
            chain=chain,
            receipt_timeout=config.relay.receipt_timeout,
            strict_jsonrpc_errors=config.relay.strict_jsonrpc_errors,
        )

    async def close(self) -> None:
        await self.chain.close()

    def _track(self, state: RelayState) -> None:
        self.stats[state.value] += 1

    def get_stats(self) -> dict[str, Any]:
        return {
            "bundler": self.signer.address,
            "next_nonce": self.signer.next_nonce,
            "queue": self.queue.get_stats(),
            **self.stats,
        }

    # ------------------------------------------------------------------
    # Envelope rendering

    @staticmethod
    def _envelope(body: Mapping[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
        envelope: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION}
        # Echo the caller's id exactly; an absent id stays absent
        if "id" in body:
            envelope["id"] = body["id"]
        envelope.update(payload)
        return envelope

    def _result(self, body: Mapping[str, Any], result: Any) -> RelayResponse:
        return RelayResponse(200, self._envelope(body, {"result": result}))

    def _error(
        self,
        body: Mapping[str, Any],
        status_code: int,
        code: int,
        message: str,
        data: Any = None,
    ) -> RelayResponse:
        error: dict[str, Any] = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        return RelayResponse(status_code, self._envelope(body, {"error": error}))

    def invalid_request(self, message: str = "Invalid Request") -> RelayResponse:
        self._track(RelayState.INVALID_INPUT)
        return self._error({}, 400, INVALID_REQUEST, message)

    # ------------------------------------------------------------------
    # Request handling

    async def handle(self, body: Any) -> RelayResponse:
        """
        Relay the operation carried by a decoded ``POST /`` body.

        Never raises for per-request failures; every outcome is rendered as a
        JSON-RPC response with the matching HTTP status.
        """
        self._track(RelayState.RECEIVED)
        if not isinstance(body, Mapping):
            return self.invalid_request()

        try:
            request = RelayRequest.from_body(body)
        except InvalidInput as exc:
            logger.info(f"Rejected request id={body.get('id')!r}: {exc.message}")
            self._track(RelayState.INVALID_INPUT)
            return self._error(body, 400, INVALID_PARAMS, exc.message)
        except ValueError as exc:
            logger.info(f"Rejected request id={body.get('id')!r}: {exc}")
            self._track(RelayState.INVALID_INPUT)
            return self._error(body, 400, INVALID_PARAMS, f"Invalid params: {exc}")

        self._track(RelayState.VALIDATED)
        logger.info(f"Received {request.user_op} for entry point {request.entry_point_address}")

        try:
            tx_hash = await self._relay(request)
        except ConfirmationTimeout as exc:
            logger.warning(str(exc))
            self._track(RelayState.PENDING)
            return self._error(
                body,
                202,
                TRANSACTION_PENDING,
                "Transaction pending",
                {"transactionHash": exc.tx_hash, "nonce": exc.nonce},
            )
        except ExecutionReverted as exc:
            logger.error(f"Operation reverted in {exc.tx_hash}: {exc.reason}")
            self._track(RelayState.REJECTED)
            return self._error(body, 500, self.internal_error_code, "Internal error", exc.reason)
        except RelayerError as exc:
            logger.error(f"Error processing UserOperation: {exc.message}")
            self._track(RelayState.REJECTED)
            return self._error(body, 500, self.internal_error_code, "Internal error", exc.message)
        except Exception as exc:
            logger.error(f"Unexpected error processing UserOperation: {exc}", exc_info=True)
            self._track(RelayState.REJECTED)
            return self._error(body, 500, self.internal_error_code, "Internal error", str(exc))

        self._track(RelayState.CONFIRMED)
        return self._result(body, tx_hash)

    async def _relay(self, request: RelayRequest) -> str:
        """Submit the request's operation and return the confirmed transaction hash."""
        self.queue.push(request.user_op)
        bundle = self.queue.drain()

        binding = EntryPointBinding.for_operation(request.user_op)
        payload = binding.encode_handle_ops(request.entry_point_address, bundle, self.signer.address)

        tx_params: TxParams = {
            "from": self.signer.address,
            "to": payload.to,
            "data": payload.data.to_0x_hex(),
            "value": 0,
            "chainId": await self.chain.chain_id(),
        }
        tx_params["gas"] = await self.chain.estimate_gas(tx_params, binding)
        tx_params["gasPrice"] = await self.chain.gas_price()

        pending = await self.signer.acquire_and_sign(tx_params, self.chain)
        self._track(RelayState.SUBMITTED)
        logger.info("Transaction sent, waiting for confirmation...")

        receipt = await self.chain.wait(pending, self.receipt_timeout, binding)
        tx_hash = HexBytes(receipt["transactionHash"]).to_0x_hex()
        logger.info(f"Transaction confirmed! Hash: {tx_hash}")
        return tx_hash
