# MIT License
# Copyright (c) 2025 Hashborn

"""
Sign-hash layout for multisig calls.

    0x19 || 0x00 || account || target || uint256(value) || payload || uint256(nonce)

The multisig account re-derives the same bytes on-chain, so the layout must
not change without a new version byte.
"""

from typing import Union
from .hash import keccak256
from .addresses import address_to_bytes
from ..types.common import EncodingError

SIGN_PREFIX = b"\x19\x00"
MAX_PAYLOAD_SIZE = 128 * 1024
UINT256_MAX = 2**256 - 1


def _encode_address(addr: str, field: str) -> bytes:
    try:
        return address_to_bytes(addr)
    except ValueError as e:
        raise EncodingError(f"{field}: {e}")


def _encode_uint256(value: int, field: str) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(f"{field} must be an integer, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise EncodingError(f"{field} out of uint256 range: {value}")
    return value.to_bytes(32, 'big')


def _encode_payload(payload: Union[bytes, str]) -> bytes:
    if isinstance(payload, str):
        if not payload.startswith("0x"):
            raise EncodingError("payload hex string must be 0x-prefixed")
        try:
            payload = bytes.fromhex(payload[2:])
        except ValueError:
            raise EncodingError("payload is not valid hex")
    if not isinstance(payload, (bytes, bytearray)):
        raise EncodingError(f"payload must be bytes, got {type(payload).__name__}")
    if len(payload) > MAX_PAYLOAD_SIZE:
        raise EncodingError(f"payload too large: {len(payload)} bytes (max {MAX_PAYLOAD_SIZE})")
    return bytes(payload)


def encode_sign_payload(account: str, target: str, value: int,
                        payload: Union[bytes, str], nonce: int) -> bytes:
    """
    Build the fixed-layout bytes a multisig call is signed over.

    Args:
        account: Multisig account address
        target: Contract the call is executed against
        value: Wei sent with the call
        payload: ABI-encoded call data (bytes or 0x hex)
        nonce: Current multisig nonce

    Raises:
        EncodingError: If any input cannot be encoded
    """
    return b"".join([
        SIGN_PREFIX,
        _encode_address(account, "account"),
        _encode_address(target, "target"),
        _encode_uint256(value, "value"),
        _encode_payload(payload),
        _encode_uint256(nonce, "nonce"),
    ])


def sign_hash(account: str, target: str, value: int,
              payload: Union[bytes, str], nonce: int) -> bytes:
    """Keccak-256 of the sign payload (32 bytes)."""
    return keccak256(encode_sign_payload(account, target, value, payload, nonce))


def sign_hash_hex(account: str, target: str, value: int,
                  payload: Union[bytes, str], nonce: int) -> str:
    return "0x" + sign_hash(account, target, value, payload, nonce).hex()
