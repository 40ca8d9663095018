"""Shared data models for the Foresight Relayer.

This module contains the request, operation and transaction types passed
between the HTTP listener, the relay handler, the signer and the chain
connection.
"""

import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping

from hexbytes import HexBytes
from web3 import Web3

from .exceptions import InvalidInput

MISSING_PARAMS_MESSAGE = "Invalid params: userOp and entryPointAddress are required."

UINT256_MAX = 2**256 - 1

_HEX_BYTES = re.compile(r"0x(?:[0-9a-fA-F]{2})*")
_HEX_INT = re.compile(r"0[xX][0-9a-fA-F]+")
_DECIMAL_INT = re.compile(r"[0-9]+")


def _parse_uint(name: str, value: Any) -> int:
    """Parse a JSON number, decimal string or 0x-hex string into a uint256."""
    if isinstance(value, bool):
        raise InvalidInput(f"Invalid params: userOp.{name} must be an integer", name, value)
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and _HEX_INT.fullmatch(value):
        parsed = int(value, 16)
    elif isinstance(value, str) and _DECIMAL_INT.fullmatch(value):
        parsed = int(value, 10)
    elif isinstance(value, str):
        raise InvalidInput(f"Invalid params: userOp.{name} is not a valid integer", name, value)
    else:
        raise InvalidInput(f"Invalid params: userOp.{name} must be an integer", name, value)

    if not 0 <= parsed <= UINT256_MAX:
        raise InvalidInput(f"Invalid params: userOp.{name} is out of uint256 range", name, value)
    return parsed


def _parse_bytes(name: str, value: Any, length: int | None = None) -> HexBytes:
    """Parse a 0x-prefixed hex string, optionally of an exact byte length."""
    if not isinstance(value, str) or not _HEX_BYTES.fullmatch(value):
        raise InvalidInput(f"Invalid params: userOp.{name} must be 0x-prefixed hex bytes", name, value)
    try:
        parsed = HexBytes(value)
    except ValueError:
        raise InvalidInput(
            f"Invalid params: userOp.{name} must be 0x-prefixed hex bytes", name, value
        ) from None
    if length is not None and len(parsed) != length:
        raise InvalidInput(
            f"Invalid params: userOp.{name} must be exactly {length} bytes", name, value
        )
    return parsed


def parse_address(name: str, value: Any) -> str:
    """Validate an address and return it in checksum form."""
    if not isinstance(value, str) or not Web3.is_address(value):
        raise InvalidInput(f"Invalid params: {name} is not a valid address", name, value)
    try:
        return Web3.to_checksum_address(value)
    except ValueError:
        raise InvalidInput(f"Invalid params: {name} is not a valid address", name, value) from None


@dataclass(frozen=True, slots=True)
class UserOperation:
    """Unpacked user operation accepted by the v0.6 entry point.

    Attributes:
        sender: Smart account submitting the operation
        nonce: Account-scoped anti-replay value (opaque to the relayer)
        init_code: Account factory call, empty for deployed accounts
        call_data: Call the account executes
        call_gas_limit: Gas for the main execution call
        verification_gas_limit: Gas for validation
        pre_verification_gas: Gas paid for calldata and overhead
        max_fee_per_gas: EIP-1559 fee cap
        max_priority_fee_per_gas: EIP-1559 tip cap
        paymaster_and_data: Paymaster address and data, empty when self-paying
        signature: Account signature, verified on chain only
    """

    ENTRY_POINT_VERSION: ClassVar[str] = "v0.6"

    sender: str
    nonce: int
    init_code: HexBytes
    call_data: HexBytes
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: HexBytes
    signature: HexBytes

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserOperation":
        return cls(
            sender=parse_address("userOp.sender", data.get("sender")),
            nonce=_parse_uint("nonce", data.get("nonce")),
            init_code=_parse_bytes("initCode", data.get("initCode", "0x")),
            call_data=_parse_bytes("callData", data.get("callData")),
            call_gas_limit=_parse_uint("callGasLimit", data.get("callGasLimit", 0)),
            verification_gas_limit=_parse_uint(
                "verificationGasLimit", data.get("verificationGasLimit", 0)
            ),
            pre_verification_gas=_parse_uint(
                "preVerificationGas", data.get("preVerificationGas", 0)
            ),
            max_fee_per_gas=_parse_uint("maxFeePerGas", data.get("maxFeePerGas", 0)),
            max_priority_fee_per_gas=_parse_uint(
                "maxPriorityFeePerGas", data.get("maxPriorityFeePerGas", 0)
            ),
            paymaster_and_data=_parse_bytes(
                "paymasterAndData", data.get("paymasterAndData", "0x")
            ),
            signature=_parse_bytes("signature", data.get("signature")),
        )

    def to_abi_tuple(self) -> tuple:
        """Order fields as the entry point's UserOperation struct."""
        return (
            self.sender,
            self.nonce,
            bytes(self.init_code),
            bytes(self.call_data),
            self.call_gas_limit,
            self.verification_gas_limit,
            self.pre_verification_gas,
            self.max_fee_per_gas,
            self.max_priority_fee_per_gas,
            bytes(self.paymaster_and_data),
            bytes(self.signature),
        )

    def __str__(self) -> str:
        return f"UserOperation({self.ENTRY_POINT_VERSION}, sender={self.sender}, nonce={self.nonce})"


@dataclass(frozen=True, slots=True)
class PackedUserOperation:
    """Packed user operation accepted by the v0.7 entry point.

    ``account_gas_limits`` packs verificationGasLimit and callGasLimit into
    one bytes32; ``gas_fees`` packs maxPriorityFeePerGas and maxFeePerGas.
    """

    ENTRY_POINT_VERSION: ClassVar[str] = "v0.7"

    sender: str
    nonce: int
    init_code: HexBytes
    call_data: HexBytes
    account_gas_limits: HexBytes
    pre_verification_gas: int
    gas_fees: HexBytes
    paymaster_and_data: HexBytes
    signature: HexBytes

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PackedUserOperation":
        return cls(
            sender=parse_address("userOp.sender", data.get("sender")),
            nonce=_parse_uint("nonce", data.get("nonce")),
            init_code=_parse_bytes("initCode", data.get("initCode", "0x")),
            call_data=_parse_bytes("callData", data.get("callData")),
            account_gas_limits=_parse_bytes(
                "accountGasLimits", data.get("accountGasLimits", "0x" + "00" * 32), 32
            ),
            pre_verification_gas=_parse_uint(
                "preVerificationGas", data.get("preVerificationGas", 0)
            ),
            gas_fees=_parse_bytes("gasFees", data.get("gasFees", "0x" + "00" * 32), 32),
            paymaster_and_data=_parse_bytes(
                "paymasterAndData", data.get("paymasterAndData", "0x")
            ),
            signature=_parse_bytes("signature", data.get("signature")),
        )

    def to_abi_tuple(self) -> tuple:
        return (
            self.sender,
            self.nonce,
            bytes(self.init_code),
            bytes(self.call_data),
            bytes(self.account_gas_limits),
            self.pre_verification_gas,
            bytes(self.gas_fees),
            bytes(self.paymaster_and_data),
            bytes(self.signature),
        )

    def __str__(self) -> str:
        return f"UserOperation({self.ENTRY_POINT_VERSION}, sender={self.sender}, nonce={self.nonce})"


AnyUserOperation = UserOperation | PackedUserOperation


def parse_user_operation(data: Any) -> AnyUserOperation:
    """Build the operation type matching the shape of the submitted object.

    Raises:
        InvalidInput: If the value is not an object or a field is malformed
    """
    if not isinstance(data, Mapping):
        raise InvalidInput("Invalid params: userOp must be an object", "userOp", data)
    if "accountGasLimits" in data or "gasFees" in data:
        return PackedUserOperation.from_dict(data)
    return UserOperation.from_dict(data)


@dataclass(frozen=True, slots=True)
class RelayRequest:
    """Validated ``POST /`` body."""

    user_op: AnyUserOperation
    entry_point_address: str

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "RelayRequest":
        """Validate a decoded request body.

        Raises:
            InvalidInput: If userOp or entryPointAddress is absent or malformed
        """
        user_op = body.get("userOp")
        entry_point_address = body.get("entryPointAddress")

        # Falsy values count as absent, matching what clients already rely on
        if not user_op or not entry_point_address:
            raise InvalidInput(MISSING_PARAMS_MESSAGE)

        return cls(
            user_op=parse_user_operation(user_op),
            entry_point_address=parse_address("entryPointAddress", entry_point_address),
        )


@dataclass(frozen=True, slots=True)
class CallPayload:
    """Encoded entry point call, ready to be wrapped in a transaction."""

    to: str
    data: HexBytes


@dataclass(frozen=True, slots=True)
class SignedTransaction:
    """Raw signed transaction together with the nonce it consumes."""

    raw_transaction: bytes
    tx_hash: str
    nonce: int


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """Handle for a broadcast transaction awaiting its receipt.

    ``tx_params`` is the unsigned transaction, kept so a revert can be
    replayed with ``eth_call`` to recover the reason.
    """

    tx_hash: str
    nonce: int
    tx_params: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RelayResponse:
    """HTTP status and JSON-RPC body produced for one request."""

    status_code: int
    body: dict[str, Any]
