# MIT License
# Copyright (c) 2025 Hashborn

"""
Registry Mutator

Runs one deployment end to end:
1. deploy the new module contracts
2. plan upgrades from the last `lookback` versions
3. register the new modules in the module registry
4. deregister the removed modules of the latest version
5. deploy and register one upgrader per plan
6. upload the new version

Every registry change goes through the multisig executor. Nothing is rolled
back on failure: re-running with the same inputs skips whatever is already
registered, so an interrupted run is resumed rather than undone.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from pydantic import BaseModel, Field, model_validator

from ..protocol.config.params import DEFAULT_LOOKBACK
from ..protocol.types.common import ModuleKind
from ..protocol.types.module import ModuleEntry, Version, classify_module_name
from ..protocol.types.request import ExecutionOutcome
from ..upgrade.planner import UpgradePlanner
from ..upgrade.types import PlanningResult, UpgradePlan
from ..observability.metrics import record_upgrader_deployed
from .interfaces import ContractDeployer, ModuleRegistry
from .multisig import MultisigExecutor
from ..versions.store import VersionStore

logger = logging.getLogger(__name__)

REGISTER_MODULE = "registerModule(address,bytes32)"
DEREGISTER_MODULE = "deregisterModule(address)"
REGISTER_UPGRADER = "registerUpgrader(address,bytes32)"


class ModuleDeployment(BaseModel):
    """A module to enable. `address` is set when the contract is already deployed."""
    name: str
    params: Dict[str, Any] = Field(default_factory=dict)
    kind: ModuleKind = ModuleKind.FEATURE
    address: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _infer_kind(cls, data):
        if isinstance(data, dict) and data.get("kind") is None:
            data = {**data, "kind": classify_module_name(data.get("name", ""))}
        return data


@dataclass
class RunReport:
    deployed: List[ModuleEntry] = field(default_factory=list)
    registered: List[ModuleEntry] = field(default_factory=list)
    deregistered: List[ModuleEntry] = field(default_factory=list)
    result: Optional[PlanningResult] = None
    upgraders: Dict[str, str] = field(default_factory=dict)
    outcomes: List[ExecutionOutcome] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    uploaded: Optional[Version] = None

    def summary(self) -> Dict[str, Any]:
        return {
            "deployed": [m.model_dump(mode="json") for m in self.deployed],
            "registered": [m.address for m in self.registered],
            "deregistered": [m.address for m in self.deregistered],
            "upgraders": dict(self.upgraders),
            "transactions": [o.tx_hash for o in self.outcomes if o.submitted],
            "skipped": list(self.skipped),
            "version": self.uploaded.model_dump(mode="json", by_alias=True) if self.uploaded else None,
        }


class RegistryMutator:
    """
    Orchestrates a deployment run against one module registry.
    """

    def __init__(
        self,
        executor: MultisigExecutor,
        registry: ModuleRegistry,
        deployer: ContractDeployer,
        version_store: VersionStore,
        planner: Optional[UpgradePlanner] = None,
        lookback: int = DEFAULT_LOOKBACK,
        known_upgraders: Optional[Dict[str, str]] = None
    ):
        """
        Args:
            executor: Authorizes registry calls through the multisig
            registry: Registry the calls target (read for idempotence checks)
            deployer: Deploys module and upgrader contracts
            version_store: Source of history and destination of the new version
            planner: Upgrade planner (default: UpgradePlanner())
            lookback: Number of recent versions that get an upgrade path
            known_upgraders: Upgraders deployed by earlier runs, by upgrader name
        """
        self.executor = executor
        self.registry = registry
        self.deployer = deployer
        self.version_store = version_store
        self.planner = planner or UpgradePlanner()
        self.lookback = lookback
        self.known_upgraders: Dict[str, str] = dict(known_upgraders or {})
        self.last_report: Optional[RunReport] = None

    def run(
        self,
        additions: Sequence[ModuleDeployment],
        removals: Sequence[str],
        target_version: Optional[str] = None
    ) -> RunReport:
        """
        Args:
            additions: Modules to deploy (or reuse) and enable
            removals: Names of modules to disable
            target_version: Release tag the new version should reach

        Returns:
            RunReport of everything applied or skipped

        Raises:
            ProtocolError: On the first failing step; self.last_report holds what was applied
        """
        report = RunReport()
        self.last_report = report

        history = self.version_store.load_last(self.lookback)
        self.planner.check_history(history)
        logger.info(
            f"Deployment run: +{[a.name for a in additions]} -{list(removals)}, "
            f"{len(history)} versions in lookback window"
        )

        entries = [self._deploy_module(d, report) for d in additions]

        # plan before the first registry call
        result = self.planner.plan(history, entries, removals, target_version)
        report.result = result

        for entry in entries:
            self._register_module(entry, report)

        if history:
            for entry in history[0].modules:
                if entry.name in removals:
                    self._deregister_module(entry, report)

        for plan in result.plans:
            self._install_upgrader(plan, report)

        self.version_store.upload(result.new_version)
        report.uploaded = result.new_version

        logger.info(
            f"Deployment run complete: version {result.new_version.version_number} "
            f"({result.new_version.fingerprint}), {len(report.outcomes)} privileged calls"
        )
        return report

    def _deploy_module(self, deployment: ModuleDeployment, report: RunReport) -> ModuleEntry:
        if deployment.address:
            logger.info(f"Using deployed {deployment.name} at {deployment.address}")
            address = deployment.address
        else:
            address = self.deployer.deploy(deployment.name, deployment.params)
        entry = ModuleEntry(address=address, name=deployment.name, kind=deployment.kind)
        report.deployed.append(entry)
        return entry

    def _call(self, method: str, args: List[Any], report: RunReport):
        outcome = self.executor.submit(self.registry.address, method, args)
        report.outcomes.append(outcome)

    def _register_module(self, entry: ModuleEntry, report: RunReport):
        if self.registry.is_registered_module(entry.address):
            report.skipped.append(f"registerModule {entry.name} {entry.address}")
            logger.info(f"{entry.name} ({entry.address}) already registered as module")
            return
        self._call(REGISTER_MODULE, [entry.address, entry.name], report)
        report.registered.append(entry)

    def _deregister_module(self, entry: ModuleEntry, report: RunReport):
        if not self.registry.is_registered_module(entry.address):
            report.skipped.append(f"deregisterModule {entry.name} {entry.address}")
            logger.info(f"{entry.name} ({entry.address}) already deregistered")
            return
        self._call(DEREGISTER_MODULE, [entry.address], report)
        report.deregistered.append(entry)

    def _install_upgrader(self, plan: UpgradePlan, report: RunReport):
        name = plan.upgrader_name
        if plan.is_empty:
            report.skipped.append(f"upgrader {name} (nothing to change)")
            logger.info(f"No upgrader needed for {plan.from_fingerprint}")
            return

        address = self.known_upgraders.get(name)
        if address:
            logger.info(f"Reusing upgrader {name} at {address}")
        else:
            address = self.deployer.deploy_upgrader(plan)
            self.known_upgraders[name] = address
            record_upgrader_deployed(plan.upgrader_kind.value)
            logger.info(f"Deployed {plan.upgrader_kind.value} upgrader {name} at {address}")
        report.upgraders[name] = address

        upgrader = ModuleEntry(address=address, name=name, kind=ModuleKind.UPGRADER)
        self._register_module(upgrader, report)

        if self.registry.is_registered_upgrader(address):
            report.skipped.append(f"registerUpgrader {name} {address}")
            logger.info(f"Upgrader {name} already registered")
        else:
            self._call(REGISTER_UPGRADER, [address, name], report)
