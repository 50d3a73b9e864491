import os
import time
from typing import Dict, List, Optional
from pydantic import BaseModel, ValidationError

from ..protocol.crypto.keys import generate_private_key, address_from_private, sign_message
from ..protocol.crypto.addresses import to_checksum_address
from ..protocol.types.common import ConfigError
from ..protocol.types.request import CoSignature

KEYSTORE_DIR = os.path.expanduser("~/.walletregistry/keys")


def parse_private_key(value: str) -> bytes:
    """Private key from hex (optional 0x prefix)."""
    value = value[2:] if value.startswith("0x") else value
    try:
        key = bytes.fromhex(value)
    except ValueError:
        raise ValueError("Invalid hex string")
    if len(key) != 32:
        raise ValueError("Invalid private key length")
    return key


class OwnerKey(BaseModel):
    """Signing key of one multisig owner, as stored on disk."""
    name: str
    address: str
    private_key: str
    added_at: str

    @property
    def key_bytes(self) -> bytes:
        return bytes.fromhex(self.private_key)

    def public(self) -> Dict[str, str]:
        return {"name": self.name, "address": self.address, "added_at": self.added_at}

    def sign_digest(self, digest: bytes) -> CoSignature:
        """Co-signature over a 32-byte authorization digest, ready for the collect prompt."""
        if len(digest) != 32:
            raise ValueError("Digest must be 32 bytes")
        return CoSignature(address=self.address, sig="0x" + sign_message(digest, self.key_bytes).hex())


class OwnerKeyStore:
    """Keys of multisig owners, one JSON file per owner."""

    def __init__(self, root_dir: str = KEYSTORE_DIR):
        self.root_dir = root_dir
        os.makedirs(self.root_dir, exist_ok=True)

    def _path(self, name: str) -> str:
        return os.path.join(self.root_dir, f"{name}.json")

    def add_owner(self, name: str, private_key: Optional[bytes] = None) -> OwnerKey:
        """
        Stores the key of an owner.

        Args:
            name: Local name of the owner
            private_key: Key to import (generated when None)

        Raises:
            ValueError: If the name or the address is already stored
        """
        if os.path.exists(self._path(name)):
            raise ValueError(f"Owner '{name}' already exists")

        key = private_key if private_key is not None else generate_private_key()
        address = address_from_private(key)
        existing = self.find(address)
        if existing:
            raise ValueError(f"Address {address} is already stored as '{existing.name}'")

        owner = OwnerKey(
            name=name,
            address=address,
            private_key=key.hex(),
            added_at=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        )
        path = self._path(name)
        with open(path, "w", encoding="utf-8") as f:
            f.write(owner.model_dump_json(indent=2))
        os.chmod(path, 0o600)
        return owner

    def _load(self, path: str) -> OwnerKey:
        try:
            with open(path, encoding="utf-8") as f:
                owner = OwnerKey.model_validate_json(f.read())
        except (OSError, ValidationError) as e:
            raise ConfigError(f"Cannot read key file {path}: {e}")
        if address_from_private(owner.key_bytes) != owner.address:
            raise ConfigError(f"Key file {path} does not match address {owner.address}")
        return owner

    def owner(self, ref: str) -> OwnerKey:
        """Owner by name, or by address when no name matches."""
        path = self._path(ref)
        if os.path.exists(path):
            return self._load(path)
        found = self.find(ref)
        if found is None:
            raise ValueError(f"Owner '{ref}' not found")
        return found

    def find(self, address: str) -> Optional[OwnerKey]:
        try:
            address = to_checksum_address(address)
        except ValueError:
            return None
        for owner in self.owners():
            if owner.address == address:
                return owner
        return None

    def owners(self) -> List[OwnerKey]:
        return [
            self._load(os.path.join(self.root_dir, filename))
            for filename in sorted(os.listdir(self.root_dir))
            if filename.endswith(".json")
        ]
