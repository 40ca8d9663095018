"""Unit tests for request and user operation parsing."""

import pytest
from web3 import Web3

from conftest import ENTRY_POINT, SENDER, make_packed_user_op, make_user_op
from foresight_relayer.exceptions import InvalidInput
from foresight_relayer.models import (
    MISSING_PARAMS_MESSAGE,
    PackedUserOperation,
    RelayRequest,
    UserOperation,
    parse_user_operation,
)


class TestUserOperationParsing:
    """Test suite for user operation parsing."""

    def test_parses_mixed_integer_encodings(self):
        """Hex strings, decimal strings and JSON numbers all parse as integers."""
        op = parse_user_operation(make_user_op())

        assert isinstance(op, UserOperation)
        assert op.sender == Web3.to_checksum_address(SENDER)
        assert op.nonce == 5
        assert op.call_gas_limit == 100000
        assert op.verification_gas_limit == 150000
        assert op.pre_verification_gas == 21000
        assert op.max_fee_per_gas == 10**9
        assert bytes(op.signature) == b"\x11" * 65

    def test_minimal_operation_defaults(self):
        """Only sender, nonce, callData and signature are required."""
        op = parse_user_operation(
            {"sender": SENDER, "nonce": 5, "callData": "0x", "signature": "0x1234"}
        )

        assert op.call_gas_limit == 0
        assert bytes(op.init_code) == b""
        assert bytes(op.paymaster_and_data) == b""

    def test_packed_operation_detected(self):
        op = parse_user_operation(make_packed_user_op())

        assert isinstance(op, PackedUserOperation)
        assert op.ENTRY_POINT_VERSION == "v0.7"
        assert len(op.account_gas_limits) == 32
        assert bytes(op.call_data) == bytes.fromhex("deadbeef")

    def test_abi_tuple_order(self):
        op = parse_user_operation(make_user_op())
        values = op.to_abi_tuple()

        assert len(values) == 11
        assert values[0] == op.sender
        assert values[1] == 5
        assert values[-1] == b"\x11" * 65

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"sender": "0x1234"}, "userOp.sender"),
            ({"sender": None}, "userOp.sender"),
            ({"nonce": -1}, "nonce"),
            ({"nonce": True}, "nonce"),
            ({"nonce": "five"}, "nonce"),
            ({"nonce": 2**256}, "nonce"),
            ({"callData": "0x1"}, "callData"),
            ({"callData": "deadbeef"}, "callData"),
            ({"callData": "0x12\n"}, "callData"),
            ({"signature": "0x1234\n"}, "signature"),
            ({"nonce": "5\n"}, "nonce"),
            ({"nonce": " 0x5"}, "nonce"),
            ({"nonce": "1_000"}, "nonce"),
            ({"signature": None}, "signature"),
        ],
    )
    def test_malformed_fields_rejected(self, overrides, field):
        with pytest.raises(InvalidInput) as exc_info:
            parse_user_operation(make_user_op(**overrides))

        assert exc_info.value.field == field
        assert exc_info.value.message.startswith("Invalid params:")

    def test_packed_gas_fields_must_be_32_bytes(self):
        with pytest.raises(InvalidInput, match="exactly 32 bytes"):
            parse_user_operation(make_packed_user_op(gasFees="0x1234"))

    def test_non_object_rejected(self):
        with pytest.raises(InvalidInput, match="userOp must be an object"):
            parse_user_operation(["not", "an", "object"])


class TestRelayRequest:
    """Test suite for request body validation."""

    def test_valid_body(self):
        request = RelayRequest.from_body(
            {"id": 42, "userOp": make_user_op(), "entryPointAddress": ENTRY_POINT}
        )

        assert request.user_op.nonce == 5
        assert request.entry_point_address == Web3.to_checksum_address(ENTRY_POINT)

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"userOp": make_user_op()},
            {"entryPointAddress": ENTRY_POINT},
            {"userOp": None, "entryPointAddress": ENTRY_POINT},
            {"userOp": make_user_op(), "entryPointAddress": ""},
            {"id": 3, "userOp": {}, "entryPointAddress": ENTRY_POINT, "extra": True},
        ],
    )
    def test_missing_params(self, body):
        with pytest.raises(InvalidInput) as exc_info:
            RelayRequest.from_body(body)

        assert exc_info.value.message == MISSING_PARAMS_MESSAGE

    def test_malformed_entry_point(self):
        with pytest.raises(InvalidInput, match="entryPointAddress is not a valid address"):
            RelayRequest.from_body({"userOp": make_user_op(), "entryPointAddress": "0xnope"})
