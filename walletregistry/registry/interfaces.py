# MIT License
# Copyright (c) 2025 Hashborn

"""
Collaborators the registry tooling drives but does not implement.

Mutations of the module registry are never called directly: they are
ABI-encoded and executed through the multisig account.
"""

from typing import Any, Dict, Protocol

from ..upgrade.types import UpgradePlan


class MultisigAccount(Protocol):
    address: str

    def current_nonce(self) -> int:
        ...

    def threshold(self) -> int:
        ...

    def execute(self, target: str, value: int, payload: bytes, signatures: bytes) -> str:
        """Execute payload against target. Returns the transaction hash; raises on rejection."""
        ...


class ModuleRegistry(Protocol):
    address: str

    def is_registered_module(self, module: str) -> bool:
        ...

    def is_registered_upgrader(self, upgrader: str) -> bool:
        ...


class ContractDeployer(Protocol):
    def deploy(self, name: str, params: Dict[str, Any]) -> str:
        """Deploy a module contract and return its address."""
        ...

    def deploy_upgrader(self, plan: UpgradePlan) -> str:
        """Deploy the upgrader flavour selected by the plan and return its address."""
        ...
