"""Exception hierarchy for the Foresight Relayer.

Every per-request failure raised below the relay handler is one of these, so
the handler can map it onto the JSON-RPC error envelope without inspecting
web3 internals.
"""

from typing import Any


class RelayerError(Exception):
    """Base exception for all relay failures."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidInput(RelayerError):
    """Raised when the request body is missing or carries malformed fields."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class SubmissionRejected(RelayerError):
    """Raised when the node refuses a transaction before inclusion.

    The nonce was never consumed. ``nonce_conflict`` is set when the node
    complained about the nonce itself, in which case the local counter is
    stale and must be re-read from the node.
    """

    def __init__(
        self,
        message: str,
        nonce_conflict: bool = False,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.nonce_conflict = nonce_conflict


class ExecutionReverted(RelayerError):
    """Raised when a transaction was mined but the entry point call reverted."""

    def __init__(
        self,
        reason: str,
        tx_hash: str | None = None,
        block_number: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(reason, details)
        self.reason = reason
        self.tx_hash = tx_hash
        self.block_number = block_number


class TransportFailure(RelayerError):
    """Raised when the node endpoint is unreachable or does not answer in time.

    It is unknown whether a broadcast reached the node.
    """

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint


class ConfirmationTimeout(RelayerError):
    """Raised when a broadcast transaction is not mined within the receipt timeout.

    The transaction may still confirm later; nothing is cancelled.
    """

    def __init__(self, tx_hash: str, nonce: int, timeout: float):
        super().__init__(
            f"Transaction {tx_hash} not confirmed after {timeout}s",
            {"transactionHash": tx_hash, "nonce": nonce},
        )
        self.tx_hash = tx_hash
        self.nonce = nonce
        self.timeout = timeout
