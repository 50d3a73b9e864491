# MIT License
# Copyright (c) 2025 Hashborn

"""
Registry Governance

Privileged calls through the multisig account and the deployment run
that drives them.
"""

from .multisig import MultisigExecutor, join_signatures
from .mutator import RegistryMutator, ModuleDeployment, RunReport

__all__ = [
    "MultisigExecutor",
    "join_signatures",
    "RegistryMutator",
    "ModuleDeployment",
    "RunReport",
]
