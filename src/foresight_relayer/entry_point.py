"""Entry point contract binding.

Encodes ``handleOps(ops, beneficiary)`` calls and decodes the entry point's
revert payloads. Everything here is a pure function of the ABI and its
arguments: no network access and no signing.
"""

import logging
from typing import Any, Sequence

from eth_abi.exceptions import DecodingError
from eth_utils import (
    abi_to_signature,
    filter_abi_by_type,
    function_signature_to_4byte_selector,
    get_abi_input_types,
)
from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract

from .models import AnyUserOperation, CallPayload, PackedUserOperation, UserOperation
from .utils.contract_utility import ContractUtility

logger = logging.getLogger(__name__)

# Solidity's built-in revert encodings
ERROR_STRING_SELECTOR = function_signature_to_4byte_selector("Error(string)")
PANIC_SELECTOR = function_signature_to_4byte_selector("Panic(uint256)")

# Offline handle: only the ABI codec is used, no provider is ever queried
_w3 = Web3()


def _format_value(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return HexBytes(value).to_0x_hex()
    return str(value)


class EntryPointBinding:
    """ABI adapter for one generation of the entry point contract."""

    CONTRACTS: dict[str, str] = {
        UserOperation.ENTRY_POINT_VERSION: "EntryPointV06",
        PackedUserOperation.ENTRY_POINT_VERSION: "EntryPointV07",
    }

    _instances: dict[str, "EntryPointBinding"] = {}

    def __init__(self, version: str = "v0.6", contract_util: ContractUtility | None = None) -> None:
        """
        Initialize the binding.

        Args:
            version: Entry point generation, ``v0.6`` or ``v0.7``
            contract_util: ABI loader (defaults to the bundled artifacts)

        Raises:
            ValueError: If the version is not supported
        """
        if version not in self.CONTRACTS:
            raise ValueError(
                f"Unsupported entry point version: {version}. "
                f"Supported versions: {', '.join(sorted(self.CONTRACTS))}"
            )

        self.version = version
        contract_util = contract_util or ContractUtility()
        abi = contract_util.get_contract_abi(self.CONTRACTS[version])
        self.contract: type[Contract] = _w3.eth.contract(abi=abi)

        self._errors: dict[bytes, tuple[str, list[str]]] = {}
        for element in filter_abi_by_type("error", abi):
            error_selector = function_signature_to_4byte_selector(abi_to_signature(element))
            self._errors[error_selector] = (element["name"], get_abi_input_types(element))

    @classmethod
    def for_operation(cls, op: AnyUserOperation) -> "EntryPointBinding":
        """Return the shared binding for the entry point generation ``op`` targets."""
        version = op.ENTRY_POINT_VERSION
        if version not in cls._instances:
            cls._instances[version] = cls(version)
        return cls._instances[version]

    def encode_handle_ops(
        self,
        entry_point_address: str,
        ops: Sequence[AnyUserOperation],
        beneficiary: str,
    ) -> CallPayload:
        """
        Encode ``handleOps(ops, beneficiary)`` against ``entry_point_address``.

        Args:
            entry_point_address: Entry point contract the call is sent to
            ops: Operations to execute, all of this binding's generation
            beneficiary: Address refunded by the entry point for the gas paid

        Returns:
            CallPayload with the checksummed target and the calldata

        Raises:
            ValueError: If ``ops`` is empty or mixes entry point generations
        """
        if not ops:
            raise ValueError("handleOps requires at least one operation")
        for op in ops:
            if op.ENTRY_POINT_VERSION != self.version:
                raise ValueError(
                    f"Operation for entry point {op.ENTRY_POINT_VERSION} "
                    f"cannot be encoded for {self.version}"
                )

        data = self.contract.encode_abi(
            "handleOps",
            args=[[op.to_abi_tuple() for op in ops], Web3.to_checksum_address(beneficiary)],
        )
        return CallPayload(to=Web3.to_checksum_address(entry_point_address), data=HexBytes(data))

    def decode_revert(self, data: bytes | str | None) -> str:
        """
        Turn revert data into a readable reason.

        Known entry point errors render as ``Name(arg, ...)``; Solidity
        ``Error(string)`` renders as the string itself; anything else as hex.
        """
        if not data:
            return "execution reverted"
        payload = HexBytes(data)
        head, body = bytes(payload[:4]), bytes(payload[4:])

        try:
            if head == ERROR_STRING_SELECTOR:
                (message,) = _w3.codec.decode(["string"], body)
                return message
            if head == PANIC_SELECTOR:
                (code,) = _w3.codec.decode(["uint256"], body)
                return f"Panic({hex(code)})"
            if head in self._errors:
                name, types = self._errors[head]
                values = _w3.codec.decode(types, body)
                rendered = []
                for abi_type, value in zip(types, values):
                    if abi_type == "bytes" and value:
                        rendered.append(self.decode_revert(value))
                    else:
                        rendered.append(_format_value(value))
                return f"{name}({', '.join(rendered)})"
        except DecodingError as exc:
            logger.debug(f"Could not decode revert payload {payload.to_0x_hex()}: {exc}")

        return f"execution reverted: {payload.to_0x_hex()}"
