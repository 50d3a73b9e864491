import re
from typing import Union
from .hash import keccak256

ADDRESS_SIZE = 20
ZERO_ADDRESS = "0x" + "00" * ADDRESS_SIZE

_HEX_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")

def address_to_bytes(addr: str) -> bytes:
    """Decodes a 0x-prefixed hex address into its 20 raw bytes."""
    if not isinstance(addr, str) or not _HEX_ADDRESS.match(addr):
        raise ValueError(f"Invalid address: {addr!r}")
    return bytes.fromhex(addr[2:])

def to_checksum_address(addr: Union[str, bytes]) -> str:
    """Returns the mixed-case (EIP-55) form of an address."""
    raw = address_to_bytes(addr) if isinstance(addr, str) else bytes(addr)
    if len(raw) != ADDRESS_SIZE:
        raise ValueError(f"Address must be {ADDRESS_SIZE} bytes, got {len(raw)}")

    hex_addr = raw.hex()
    digest = keccak256(hex_addr.encode("ascii")).hex()
    return "0x" + "".join(
        c.upper() if int(digest[i], 16) >= 8 else c
        for i, c in enumerate(hex_addr)
    )

def address_from_pubkey(pub_bytes: bytes) -> str:
    """Derives the account address from an uncompressed public key (64 bytes, or 65 with 0x04 prefix)."""
    if len(pub_bytes) == 65 and pub_bytes[0] == 4:
        pub_bytes = pub_bytes[1:]
    if len(pub_bytes) != 64:
        raise ValueError("Expected an uncompressed secp256k1 public key")
    return to_checksum_address(keccak256(pub_bytes)[12:])

def address_to_int(addr: str) -> int:
    return int.from_bytes(address_to_bytes(addr), "big")

def is_valid_address(addr: str, strict: bool = False) -> bool:
    """
    Checks address format. With strict=True a mixed-case address must also
    carry a valid checksum.
    """
    try:
        checksummed = to_checksum_address(addr)
    except ValueError:
        return False
    if strict and addr != addr.lower() and addr != "0x" + addr[2:].upper():
        return checksummed == addr
    return True
