from pydantic import BaseModel, field_validator
from typing import Optional
from ..crypto.digest import sign_hash
from ..crypto.keys import sign_message, recover_address, hash_message
from ..crypto.addresses import to_checksum_address

class AuthorizationRequest(BaseModel):
    """A privileged call awaiting multisig approval."""
    account: str           # multisig address
    target: str            # contract the call is executed against
    value: int = 0
    payload: str           # 0x hex ABI-encoded call data
    nonce: int
    method: str = ""       # canonical signature, for operators
    signatures: str = "0x" # concatenated 65-byte signatures

    @field_validator("account", "target")
    @classmethod
    def _checksum(cls, v: str) -> str:
        return to_checksum_address(v)

    def hash(self) -> bytes:
        return sign_hash(self.account, self.target, self.value, self.payload, self.nonce)

    @property
    def digest_hex(self) -> str:
        return "0x" + self.hash().hex()

    @property
    def payload_bytes(self) -> bytes:
        return bytes.fromhex(self.payload[2:])

    @property
    def signature_bytes(self) -> bytes:
        return bytes.fromhex(self.signatures[2:])

    def sign(self, priv_key_bytes: bytes):
        """Signs the request digest with a single owner key."""
        self.signatures = "0x" + sign_message(self.hash(), priv_key_bytes).hex()

    def describe(self) -> str:
        return "\n".join([
            f"multisig: {self.account}",
            f"to:       {self.target}",
            f"method:   {self.method}",
            f"value:    {self.value}",
            f"data:     {self.payload}",
            f"nonce:    {self.nonce}",
            f"SignHash: {self.digest_hex}",
        ])


class CoSignature(BaseModel):
    """Signature supplied out of band by one multisig owner."""
    address: str
    sig: str

    @field_validator("address")
    @classmethod
    def _checksum(cls, v: str) -> str:
        return to_checksum_address(v)

    @property
    def sig_bytes(self) -> bytes:
        return bytes.fromhex(self.sig[2:] if self.sig.startswith("0x") else self.sig)

    def signer(self, digest: bytes) -> str:
        return recover_address(hash_message(digest), self.sig_bytes)

    def matches(self, digest: bytes) -> bool:
        try:
            return self.signer(digest) == self.address
        except ValueError:
            return False


class ExecutionOutcome(BaseModel):
    request: AuthorizationRequest
    submitted: bool                 # False when completed out of band
    tx_hash: Optional[str] = None
