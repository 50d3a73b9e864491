# MIT License
# Copyright (c) 2025 Hashborn

"""
Upgrade Planning

Computes the next accepted module set and the upgrader transitions that
bring every recent version directly to it.
"""

from .types import SemVer, UpgradePlan, PlanningResult
from .planner import UpgradePlanner, diff_versions, next_version_number, strict_patch_bump

__all__ = [
    "SemVer",
    "UpgradePlan",
    "PlanningResult",
    "UpgradePlanner",
    "diff_versions",
    "next_version_number",
    "strict_patch_bump",
]
