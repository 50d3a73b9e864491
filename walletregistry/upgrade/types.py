# MIT License
# Copyright (c) 2025 Hashborn

"""
Upgrade Planning Types
"""

from pydantic import BaseModel, ConfigDict
from typing import List, Tuple
from dataclasses import dataclass

from ..protocol.types.common import UpgraderKind
from ..protocol.types.module import ModuleEntry, Version


@dataclass
class SemVer:
    """
    Semantic version (MAJOR.MINOR.PATCH) of an accepted module set.
    """
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    @classmethod
    def from_string(cls, version_str: str) -> 'SemVer':
        """Parse version from string (e.g., '1.2.3')."""
        parts = version_str.split('.')
        if len(parts) != 3 or not all(p.isdigit() for p in parts):
            raise ValueError(f"Invalid version format: {version_str}")

        return cls(
            major=int(parts[0]),
            minor=int(parts[1]),
            patch=int(parts[2])
        )

    def bump_patch(self) -> 'SemVer':
        return SemVer(self.major, self.minor, self.patch + 1)

    def __lt__(self, other: 'SemVer') -> bool:
        if self.major != other.major:
            return self.major < other.major
        if self.minor != other.minor:
            return self.minor < other.minor
        return self.patch < other.patch

    def __eq__(self, other) -> bool:
        if not isinstance(other, SemVer):
            return False
        return (self.major, self.minor, self.patch) == (other.major, other.minor, other.patch)

    def __le__(self, other: 'SemVer') -> bool:
        return self < other or self == other

    def __gt__(self, other: 'SemVer') -> bool:
        return not self <= other

    def __ge__(self, other: 'SemVer') -> bool:
        return not self < other


class UpgradePlan(BaseModel):
    """
    Transition of one historical version to the new version.

    Consumed to deploy and register one upgrader contract; never persisted.
    """
    model_config = ConfigDict(frozen=True)

    from_fingerprint: str
    to_fingerprint: str
    from_version: str
    to_add: Tuple[ModuleEntry, ...]
    to_remove: Tuple[ModuleEntry, ...]
    upgrader_kind: UpgraderKind

    @property
    def upgrader_name(self) -> str:
        """Deterministic name of the upgrader bridging the two fingerprints."""
        return f"{self.from_fingerprint}_{self.to_fingerprint}"

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


class PlanningResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    new_version: Version
    plans: List[UpgradePlan]
