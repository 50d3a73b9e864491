# MIT License
# Copyright (c) 2025 Hashborn

"""
Minimal ABI codec for the static-argument calls sent through the multisig.

Only fixed-size types are supported (address, bool, bytes32, uintN); every
registry and multisig administration method uses nothing else.
"""

import re
from typing import Any, List, Sequence, Tuple
from .crypto.hash import function_selector
from .crypto.addresses import address_to_bytes, to_checksum_address
from .types.common import EncodingError

WORD_SIZE = 32

_SIGNATURE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\(([a-z0-9,]*)\)$")
_UINT = re.compile(r"^uint(\d*)$")


def parse_signature(method: str) -> Tuple[str, List[str]]:
    """Split 'name(type1,type2)' into ('name', ['type1', 'type2'])."""
    match = _SIGNATURE.match(method.replace(" ", ""))
    if not match:
        raise EncodingError(f"Invalid method signature: {method!r}")
    name, params = match.groups()
    return name, [p for p in params.split(",") if p]


def ascii_to_bytes32(text: str) -> bytes:
    """Right-pads a short UTF-8 string into a bytes32 value (at most 31 bytes, null-terminated)."""
    raw = text.encode("utf-8")
    if len(raw) > WORD_SIZE - 1:
        raise EncodingError(f"String too long for bytes32: {text!r}")
    return raw.ljust(WORD_SIZE, b"\x00")


def bytes32_to_ascii(raw: bytes) -> str:
    return raw.rstrip(b"\x00").decode("utf-8")


def encode_argument(abi_type: str, value: Any) -> bytes:
    if abi_type == "address":
        try:
            return address_to_bytes(value).rjust(WORD_SIZE, b"\x00")
        except ValueError as e:
            raise EncodingError(str(e))

    if abi_type == "bool":
        if not isinstance(value, bool):
            raise EncodingError(f"Expected bool, got {value!r}")
        return int(value).to_bytes(WORD_SIZE, 'big')

    if abi_type == "bytes32":
        if isinstance(value, str):
            value = ascii_to_bytes32(value)
        if not isinstance(value, (bytes, bytearray)) or len(value) > WORD_SIZE:
            raise EncodingError(f"Expected at most {WORD_SIZE} bytes, got {value!r}")
        return bytes(value).ljust(WORD_SIZE, b"\x00")

    uint = _UINT.match(abi_type)
    if uint:
        bits = int(uint.group(1) or 256)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0 or value >= 2**bits:
            raise EncodingError(f"Value {value!r} does not fit {abi_type}")
        return value.to_bytes(WORD_SIZE, 'big')

    raise EncodingError(f"Unsupported ABI type: {abi_type}")


def decode_argument(abi_type: str, word: bytes) -> Any:
    if abi_type == "address":
        return to_checksum_address(word[-20:])
    if abi_type == "bool":
        return word[-1] == 1
    if abi_type == "bytes32":
        return word
    if _UINT.match(abi_type):
        return int.from_bytes(word, 'big')
    raise EncodingError(f"Unsupported ABI type: {abi_type}")


def method_selector(method: str) -> bytes:
    name, types = parse_signature(method)
    return function_selector(f"{name}({','.join(types)})")


def encode_call(method: str, args: Sequence[Any]) -> bytes:
    """
    ABI-encode a call.

    Args:
        method: Canonical signature, e.g. "registerModule(address,bytes32)"
        args: Positional arguments matching the signature

    Returns:
        4-byte selector followed by one 32-byte word per argument
    """
    name, types = parse_signature(method)
    if len(args) != len(types):
        raise EncodingError(f"{name} expects {len(types)} arguments, got {len(args)}")
    return method_selector(method) + b"".join(
        encode_argument(t, a) for t, a in zip(types, args)
    )


def decode_call(method: str, payload: bytes) -> List[Any]:
    """Decode call data produced by encode_call for the given method."""
    _, types = parse_signature(method)
    if payload[:4] != method_selector(method):
        raise EncodingError(f"Payload does not call {method}")
    body = payload[4:]
    if len(body) != WORD_SIZE * len(types):
        raise EncodingError(f"Malformed call data for {method}")
    return [
        decode_argument(t, body[i * WORD_SIZE:(i + 1) * WORD_SIZE])
        for i, t in enumerate(types)
    ]
