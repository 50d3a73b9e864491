# MIT License
# Copyright (c) 2025 Hashborn

"""
In-process stand-ins for the on-chain collaborators.

The multisig re-derives the digest and checks signatures and nonce the way
the deployed account does, then dispatches the call to the registry. Used
for dry runs and tests.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..protocol.abi import decode_call, bytes32_to_ascii, method_selector
from ..protocol.crypto.addresses import address_to_int, to_checksum_address
from ..protocol.crypto.digest import sign_hash
from ..protocol.crypto.hash import keccak256
from ..protocol.crypto.keys import SIGNATURE_SIZE, hash_message, recover_address
from ..protocol.types.common import UpgraderKind
from ..protocol.types.module import ModuleEntry
from ..upgrade.types import UpgradePlan

logger = logging.getLogger(__name__)


class Revert(Exception):
    """A simulated call was rejected; no state was changed."""
    pass


class SimulatedChain:
    """Address space and call dispatch shared by the simulated contracts."""

    def __init__(self, seed: str = "walletregistry"):
        self.seed = seed
        self.contracts: Dict[str, Any] = {}
        self.transactions: List[Dict[str, Any]] = []
        self._counter = 0

    def next_address(self, label: str) -> str:
        """Deterministic fresh address for a new contract."""
        self._counter += 1
        digest = keccak256(f"{self.seed}:{label}:{self._counter}".encode())
        return to_checksum_address(digest[12:])

    def deploy(self, label: str, contract: Any) -> str:
        address = self.next_address(label)
        self.contracts[address] = contract
        return address

    def dispatch(self, sender: str, target: str, value: int, payload: bytes) -> str:
        contract = self.contracts.get(to_checksum_address(target))
        if contract is None or not hasattr(contract, "call"):
            raise Revert(f"call to non-contract {target}")

        contract.call(sender, value, payload)

        tx_hash = "0x" + keccak256(
            f"{sender}:{target}:{len(self.transactions)}".encode() + payload
        ).hex()
        self.transactions.append({
            "hash": tx_hash,
            "from": sender,
            "to": target,
            "value": value,
            "data": "0x" + payload.hex()
        })
        return tx_hash


class SimulatedMultisig:
    """
    Threshold account: executes a call only when it carries `threshold`
    signatures from distinct owners, ordered by ascending owner address,
    over the digest bound to the current nonce.
    """

    def __init__(self, chain: SimulatedChain, owners: Iterable[str], threshold: int):
        owners = [to_checksum_address(o) for o in owners]
        if threshold < 1 or threshold > len(owners):
            raise ValueError(f"Threshold {threshold} invalid for {len(owners)} owners")

        self.chain = chain
        self.owners = set(owners)
        self._threshold = threshold
        self.nonce = 0
        self.address = chain.deploy("multisig", self)

    def current_nonce(self) -> int:
        return self.nonce

    def threshold(self) -> int:
        return self._threshold

    def execute(self, target: str, value: int, payload: bytes, signatures: bytes) -> str:
        if len(signatures) != SIGNATURE_SIZE * self._threshold:
            raise Revert("MSW: Invalid signatures length")

        digest = hash_message(sign_hash(self.address, target, value, payload, self.nonce))

        last = -1
        for i in range(self._threshold):
            chunk = signatures[i * SIGNATURE_SIZE:(i + 1) * SIGNATURE_SIZE]
            try:
                signer = recover_address(digest, chunk)
            except ValueError:
                raise Revert("MSW: Invalid signature")
            if signer not in self.owners:
                raise Revert("MSW: Not an owner")
            if address_to_int(signer) <= last:
                raise Revert("MSW: Badly ordered signatures")
            last = address_to_int(signer)

        tx_hash = self.chain.dispatch(self.address, target, value, payload)
        self.nonce += 1
        return tx_hash


class SimulatedModuleRegistry:
    """Module registry owned by one account (the multisig)."""

    def __init__(self, chain: SimulatedChain, owner: str):
        self.chain = chain
        self.owner = to_checksum_address(owner)
        self.modules: Dict[str, str] = {}
        self.upgraders: Dict[str, str] = {}
        self.address = chain.deploy("registry", self)

        self._handlers: Dict[bytes, Tuple[str, Callable]] = {
            method_selector(m): (m, h) for m, h in [
                ("registerModule(address,bytes32)", self._register_module),
                ("deregisterModule(address)", self._deregister_module),
                ("registerUpgrader(address,bytes32)", self._register_upgrader),
            ]
        }

    def seed(self, modules: Iterable[ModuleEntry]):
        """Register modules directly, as a previous deployment would have left them."""
        for module in modules:
            self.modules[module.address] = module.name

    def call(self, sender: str, value: int, payload: bytes):
        if sender != self.owner:
            raise Revert("MR: caller is not owner")

        handler = self._handlers.get(payload[:4])
        if handler is None:
            raise Revert("MR: unknown method")
        method, fn = handler
        fn(*decode_call(method, payload))

    def _register_module(self, module: str, name: bytes):
        if module in self.modules:
            raise Revert("MR: module already exists")
        self.modules[module] = bytes32_to_ascii(name)
        logger.debug(f"Registered module {module} ({self.modules[module]})")

    def _deregister_module(self, module: str):
        if module not in self.modules:
            raise Revert("MR: module does not exist")
        del self.modules[module]
        logger.debug(f"Deregistered module {module}")

    def _register_upgrader(self, upgrader: str, name: bytes):
        if upgrader in self.upgraders:
            raise Revert("MR: upgrader already exists")
        self.upgraders[upgrader] = bytes32_to_ascii(name)
        logger.debug(f"Registered upgrader {upgrader} ({self.upgraders[upgrader]})")

    def is_registered_module(self, module: str) -> bool:
        return to_checksum_address(module) in self.modules

    def is_registered_upgrader(self, upgrader: str) -> bool:
        return to_checksum_address(upgrader) in self.upgraders


class DeployedContract:
    def __init__(self, name: str, params: Dict[str, Any]):
        self.name = name
        self.params = params


class SimulatedDeployer:
    """Deploys inert contracts and remembers their constructor parameters."""

    def __init__(self, chain: SimulatedChain):
        self.chain = chain
        self.deployments: List[Tuple[str, str, Dict[str, Any]]] = []

    def deploy(self, name: str, params: Optional[Dict[str, Any]] = None) -> str:
        params = dict(params or {})
        address = self.chain.deploy(name, DeployedContract(name, params))
        self.deployments.append((name, address, params))
        logger.info(f"Deployed {name} at {address}")
        return address

    def deploy_upgrader(self, plan: UpgradePlan) -> str:
        contract = "LegacyUpgrader" if plan.upgrader_kind is UpgraderKind.LEGACY else "ModernUpgrader"
        return self.deploy(contract, {
            "name": plan.upgrader_name,
            "toDisable": [m.address for m in plan.to_remove],
            "toEnable": [m.address for m in plan.to_add],
        })
