from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Iterable, Set, Tuple, Union
from .common import ModuleKind
from ..crypto.hash import keccak256_hex
from ..crypto.addresses import address_to_bytes, to_checksum_address

# Names of the coordinator modules in version records written before
# modules carried an explicit kind
LEGACY_COORDINATOR_NAMES = {"ModuleManager"}
MODERN_COORDINATOR_NAMES = {"VersionManager"}

FINGERPRINT_LENGTH = 10  # "0x" + 4 bytes


def classify_module_name(name: str) -> ModuleKind:
    if name in LEGACY_COORDINATOR_NAMES:
        return ModuleKind.LEGACY_COORDINATOR
    if name in MODERN_COORDINATOR_NAMES:
        return ModuleKind.MODERN_COORDINATOR
    return ModuleKind.FEATURE


def version_fingerprint(modules: Iterable[Union["ModuleEntry", str]]) -> str:
    """
    Content hash of a module set: keccak-256 over the member addresses
    sorted in descending numeric order, truncated to 4 bytes.
    Independent of the order in which modules are listed.
    """
    raw = {
        address_to_bytes(m if isinstance(m, str) else m.address)
        for m in modules
    }
    concat = b"".join(sorted(raw, reverse=True))
    return keccak256_hex(concat)[:FINGERPRINT_LENGTH]


class ModuleEntry(BaseModel):
    """A registrable unit. Two entries are the same module iff their addresses match."""
    model_config = ConfigDict(frozen=True)

    address: str
    name: str
    kind: ModuleKind = ModuleKind.FEATURE

    @model_validator(mode="before")
    @classmethod
    def _infer_kind(cls, data):
        if isinstance(data, dict) and data.get("kind") is None:
            data = {**data, "kind": classify_module_name(data.get("name", ""))}
        return data

    @field_validator("address")
    @classmethod
    def _checksum(cls, v: str) -> str:
        return to_checksum_address(v)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ModuleEntry):
            return NotImplemented
        return self.address == other.address

    def __hash__(self) -> int:
        return hash(self.address)


class Version(BaseModel):
    """
    Accepted module set at a point in time. Serialized with the field names
    used by existing version records (version, createdAt).
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    modules: Tuple[ModuleEntry, ...]
    fingerprint: str
    version_number: str = Field(alias="version")
    created_at: int = Field(alias="createdAt")

    @field_validator("modules")
    @classmethod
    def _unique_addresses(cls, modules: Tuple[ModuleEntry, ...]) -> Tuple[ModuleEntry, ...]:
        seen = set()
        for module in modules:
            if module.address in seen:
                raise ValueError(f"Duplicate module address {module.address}")
            seen.add(module.address)
        return modules

    @classmethod
    def create(cls, modules: Iterable[ModuleEntry], version_number: str, created_at: int) -> "Version":
        modules = tuple(modules)
        return cls(
            modules=modules,
            fingerprint=version_fingerprint(modules),
            version_number=version_number,
            created_at=created_at
        )

    def addresses(self) -> Set[str]:
        return {m.address for m in self.modules}

    def names(self) -> Set[str]:
        return {m.name for m in self.modules}

    def has_kind(self, kind: ModuleKind) -> bool:
        return any(m.kind is kind for m in self.modules)

    def verify_fingerprint(self) -> bool:
        """Check the stored fingerprint matches the module set."""
        return self.fingerprint == version_fingerprint(self.modules)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
