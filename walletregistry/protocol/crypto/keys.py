import hashlib
import os
from ecdsa import SigningKey, VerifyingKey, SECP256k1 # type: ignore
from ecdsa.util import sigdecode_string # type: ignore
from .hash import keccak256
from .addresses import address_from_pubkey

SIGNATURE_SIZE = 65
_HALF_ORDER = SECP256k1.order // 2

def generate_private_key() -> bytes:
    """Generates a random 32-byte private key."""
    return os.urandom(32)

def public_key_from_private(priv_bytes: bytes) -> bytes:
    """Returns the uncompressed 64-byte public key (x || y) for a private key."""
    sk = SigningKey.from_string(priv_bytes, curve=SECP256k1)
    return sk.get_verifying_key().to_string()

def address_from_private(priv_bytes: bytes) -> str:
    return address_from_pubkey(public_key_from_private(priv_bytes))

def hash_message(message: bytes) -> bytes:
    """Hashes a message with the Ethereum signed-message prefix, as wallets do before signing."""
    prefix = b"\x19Ethereum Signed Message:\n" + str(len(message)).encode("ascii")
    return keccak256(prefix + message)

def sign(message_hash: bytes, priv_bytes: bytes) -> bytes:
    """
    Signs a 32-byte hash. Returns the 65-byte canonical form r || s || v:
    s is normalized to the lower half of the curve order and v is 27 or 28.
    """
    sk = SigningKey.from_string(priv_bytes, curve=SECP256k1)
    r, s = sk.sign_digest_deterministic(
        message_hash,
        hashfunc=hashlib.sha256,
        sigencode=lambda r, s, order: (r, s)
    )
    if s > _HALF_ORDER:
        s = SECP256k1.order - s

    rs = r.to_bytes(32, 'big') + s.to_bytes(32, 'big')
    own_key = sk.get_verifying_key().to_string()
    candidates = VerifyingKey.from_public_key_recovery_with_digest(
        rs, message_hash, SECP256k1, sigdecode=sigdecode_string
    )
    for recovery_id, candidate in enumerate(candidates):
        if candidate.to_string() == own_key:
            return rs + bytes([27 + recovery_id])

    raise ValueError("Could not derive recovery id for signature")

def sign_message(message: bytes, priv_bytes: bytes) -> bytes:
    """Signs an arbitrary message (typically a 32-byte digest) under the signed-message prefix."""
    return sign(hash_message(message), priv_bytes)

def recover_address(message_hash: bytes, signature: bytes) -> str:
    """Recovers the signer address from a 65-byte r || s || v signature."""
    if len(signature) != SIGNATURE_SIZE:
        raise ValueError(f"Signature must be {SIGNATURE_SIZE} bytes, got {len(signature)}")

    v = signature[64]
    recovery_id = v - 27 if v >= 27 else v
    if recovery_id not in (0, 1):
        raise ValueError(f"Invalid recovery id: {v}")

    try:
        candidates = VerifyingKey.from_public_key_recovery_with_digest(
            signature[:64], message_hash, SECP256k1, sigdecode=sigdecode_string
        )
    except Exception as e:
        raise ValueError(f"Invalid signature: {e}")

    if recovery_id >= len(candidates):
        raise ValueError("Invalid signature: no key for recovery id")
    return address_from_pubkey(candidates[recovery_id].to_string())

def verify(message_hash: bytes, signature: bytes, address: str) -> bool:
    """Checks that a signature over message_hash was produced by address."""
    try:
        return recover_address(message_hash, signature).lower() == address.lower()
    except ValueError:
        return False
