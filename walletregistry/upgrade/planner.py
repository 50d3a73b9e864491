# MIT License
# Copyright (c) 2025 Hashborn

"""
Upgrade Planner

Computes the next accepted version and one direct upgrade path from each
recent version to it. Planning is two-phase: the new version is built once
from the latest version, then a pure diff is mapped over every historical
version against that same target.
"""

import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .types import SemVer, UpgradePlan, PlanningResult
from ..protocol.types.common import ModuleKind, UpgraderKind, PlanningError
from ..protocol.types.module import ModuleEntry, Version

logger = logging.getLogger(__name__)

INITIAL_VERSION = "1.0.0"

# (previous version number or None, target release tag or None) -> next version number
VersionPolicy = Callable[[Optional[str], Optional[str]], str]


def next_version_number(previous: Optional[str], target: Optional[str]) -> str:
    """
    Smallest version that is both >= the target tag and > the previous version
    (by one patch bump). Never regresses below an explicit target.
    """
    candidates = []
    if previous:
        candidates.append(SemVer.from_string(previous).bump_patch())
    if target:
        candidates.append(SemVer.from_string(target))
    if not candidates:
        return INITIAL_VERSION
    return str(max(candidates))


def strict_patch_bump(previous: Optional[str], target: Optional[str]) -> str:
    """Always one patch above the previous version; the target tag only seeds the first version."""
    if previous:
        return str(SemVer.from_string(previous).bump_patch())
    return target or INITIAL_VERSION


def diff_versions(version: Version, target: Version) -> UpgradePlan:
    """
    Upgrade path from version to target, by address.

    Wallets still on the legacy coordinator need the legacy upgrader, and the
    coordinator itself must be removed last: once it is gone the wallet can no
    longer authorize the remaining removals.
    """
    source_addresses = version.addresses()
    target_addresses = target.addresses()

    to_add = [m for m in target.modules if m.address not in source_addresses]
    to_remove = [m for m in version.modules if m.address not in target_addresses]

    if version.has_kind(ModuleKind.LEGACY_COORDINATOR):
        upgrader_kind = UpgraderKind.LEGACY
        coordinators = [m for m in to_remove if m.kind is ModuleKind.LEGACY_COORDINATOR]
        to_remove = [m for m in to_remove if m.kind is not ModuleKind.LEGACY_COORDINATOR] + coordinators
    else:
        upgrader_kind = UpgraderKind.MODERN

    overlap = set(to_add) & set(to_remove)
    if overlap:
        raise PlanningError(
            f"Upgrade {version.fingerprint} -> {target.fingerprint} both adds and removes "
            f"{sorted(m.address for m in overlap)}"
        )

    return UpgradePlan(
        from_fingerprint=version.fingerprint,
        to_fingerprint=target.fingerprint,
        from_version=version.version_number,
        to_add=tuple(to_add),
        to_remove=tuple(to_remove),
        upgrader_kind=upgrader_kind
    )


class UpgradePlanner:
    """
    Plans upgrades from the last K accepted versions to a new one.
    """

    def __init__(self, version_policy: VersionPolicy = next_version_number,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            version_policy: Chooses the new version number
            clock: Source of the new version's creation time (seconds)
        """
        self.version_policy = version_policy
        self.clock = clock

    def plan(
        self,
        history: Sequence[Version],
        additions: Iterable[ModuleEntry],
        removals: Iterable[str],
        target_version: Optional[str] = None
    ) -> PlanningResult:
        """
        Args:
            history: Recent versions, newest first
            additions: Freshly deployed modules to enable
            removals: Names of modules to disable
            target_version: Release tag the new version should reach

        Returns:
            PlanningResult with the new version and one plan per historical version

        Raises:
            PlanningError: If history is inconsistent or a plan would be invalid
        """
        history = list(history)
        additions = list(additions)
        removals = list(removals)

        self.check_history(history)
        new_version = self.build_target_version(history, additions, removals, target_version)
        self._check_names(history, new_version)

        plans = [diff_versions(version, new_version) for version in history]

        logger.info(
            f"Planned version {new_version.version_number} ({new_version.fingerprint}) "
            f"with {len(new_version.modules)} modules, {len(plans)} upgrade paths"
        )
        for plan in plans:
            logger.debug(
                f"{plan.upgrader_name} [{plan.upgrader_kind.value}]: "
                f"+{[m.name for m in plan.to_add]} -{[m.name for m in plan.to_remove]}"
            )

        return PlanningResult(new_version=new_version, plans=plans)

    def check_history(self, history: Sequence[Version]):
        """
        Reject history the planner cannot trust: out of creation order, or a
        stored fingerprint that no longer matches its module set.
        """
        for newer, older in zip(history, history[1:]):
            if newer.created_at < older.created_at:
                raise PlanningError(
                    f"History is not newest-first: {newer.fingerprint} ({newer.created_at}) "
                    f"precedes {older.fingerprint} ({older.created_at})"
                )

        for version in history:
            if not version.verify_fingerprint():
                raise PlanningError(
                    f"Version {version.version_number} has fingerprint {version.fingerprint} "
                    f"that does not match its modules"
                )

    def build_target_version(
        self,
        history: Sequence[Version],
        additions: List[ModuleEntry],
        removals: List[str],
        target_version: Optional[str]
    ) -> Version:
        """
        New version = modules of the latest version, minus every module whose
        name is removed or re-deployed, plus the additions.
        """
        if len(set(additions)) != len(additions):
            raise PlanningError("Additions contain the same address twice")

        previous = None
        modules = list(additions)

        if history:
            latest = history[0]
            previous = latest.version_number

            unknown = set(removals) - latest.names()
            if unknown:
                logger.warning(f"Modules to disable not in version {previous}: {sorted(unknown)}")

            replaced = set(removals) | {m.name for m in additions}
            to_keep = [m for m in latest.modules if m.name not in replaced]

            clash = set(to_keep) & set(additions)
            if clash:
                raise PlanningError(
                    f"Additions reuse addresses of kept modules: {sorted(m.address for m in clash)}"
                )
            modules = to_keep + modules

        try:
            version_number = self.version_policy(previous, target_version)
        except ValueError as e:
            raise PlanningError(f"Cannot compute next version number: {e}")

        return Version.create(modules, version_number, int(self.clock()))

    def _check_names(self, history: Sequence[Version], new_version: Version):
        """The same address must carry the same name everywhere it appears."""
        names: Dict[str, str] = {}
        for version in [new_version, *history]:
            for module in version.modules:
                known = names.setdefault(module.address, module.name)
                if known != module.name:
                    raise PlanningError(
                        f"Address {module.address} is recorded as both '{known}' and "
                        f"'{module.name}' (version {version.fingerprint})"
                    )
