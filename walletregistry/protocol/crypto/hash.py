from Crypto.Hash import keccak

def keccak256(data: bytes) -> bytes:
    """Returns Keccak-256 hash of bytes (the pre-standard SHA3 used on-chain)."""
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()

def keccak256_hex(data: bytes) -> str:
    """Returns Keccak-256 hash of bytes as 0x-prefixed hex string."""
    return "0x" + keccak256(data).hex()

def function_selector(signature: str) -> bytes:
    """Returns the 4-byte selector of a canonical method signature, e.g. 'registerModule(address,bytes32)'."""
    return keccak256(signature.encode("ascii"))[:4]
