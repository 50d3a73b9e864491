"""
Tests for the registry mutator (full deployment runs on the simulated chain).

Tests:
- Step ordering of deployments and privileged calls
- Upgrader flavour selection
- Resuming an interrupted run
- Planning failures abort before any mutation
"""
import pytest

from walletregistry.protocol.abi import method_selector
from walletregistry.protocol.crypto.addresses import to_checksum_address
from walletregistry.protocol.crypto.keys import generate_private_key, address_from_private
from walletregistry.protocol.types.common import ModuleKind, PlanningError
from walletregistry.protocol.types.module import ModuleEntry, Version
from walletregistry.upgrade.planner import UpgradePlanner
from walletregistry.registry.multisig import MultisigExecutor
from walletregistry.registry.mutator import (
    RegistryMutator, ModuleDeployment, REGISTER_MODULE, DEREGISTER_MODULE, REGISTER_UPGRADER
)
from walletregistry.registry.simulated import (
    SimulatedChain, SimulatedMultisig, SimulatedModuleRegistry, SimulatedDeployer
)
from walletregistry.versions.store import LocalVersionStore


def addr(i: int) -> str:
    return to_checksum_address(bytes([i]) * 20)


A = ModuleEntry(address=addr(0xA), name="Foo")
B = ModuleEntry(address=addr(0xB), name="Bar")
LEGACY = ModuleEntry(address=addr(0x1), name="ModuleManager")


class Env:
    def __init__(self, tmp_path, history=()):
        key = generate_private_key()
        self.chain = SimulatedChain()
        self.multisig = SimulatedMultisig(self.chain, [address_from_private(key)], 1)
        self.registry = SimulatedModuleRegistry(self.chain, owner=self.multisig.address)
        self.deployer = SimulatedDeployer(self.chain)
        self.store = LocalVersionStore(str(tmp_path / "versions"))
        for version in history:
            self.store.upload(version)
            self.registry.seed(version.modules)
        self.executor = MultisigExecutor(self.multisig, key)

    def mutator(self, **kwargs):
        return RegistryMutator(
            self.executor, self.registry, self.deployer, self.store,
            planner=UpgradePlanner(clock=lambda: 1000), **kwargs
        )

    def calls(self):
        """Method of each executed registry call, in order."""
        by_selector = {
            method_selector(m): m for m in (REGISTER_MODULE, DEREGISTER_MODULE, REGISTER_UPGRADER)
        }
        return [by_selector[bytes.fromhex(tx["data"][2:10])] for tx in self.chain.transactions]


def test_first_deployment(tmp_path):
    env = Env(tmp_path)
    report = env.mutator().run([ModuleDeployment(name="M1")], [])

    m1 = report.deployed[0]
    assert env.registry.modules == {m1.address: "M1"}
    assert env.calls() == [REGISTER_MODULE]
    assert report.upgraders == {}
    assert report.result.plans == []
    assert env.store.load_last(3) == [report.uploaded]
    assert report.uploaded.modules == (m1,)


def test_swap_runs_steps_in_order(tmp_path):
    h0 = Version.create([A, B], "1.0.0", 100)
    env = Env(tmp_path, [h0])

    report = env.mutator().run([ModuleDeployment(name="Baz", params={"owner": "x"})], ["Foo"])

    baz = report.deployed[0]
    assert [d[0] for d in env.deployer.deployments] == ["Baz", "ModernUpgrader"]
    assert env.deployer.deployments[0][2] == {"owner": "x"}
    assert env.calls() == [REGISTER_MODULE, DEREGISTER_MODULE, REGISTER_MODULE, REGISTER_UPGRADER]

    name = f"{h0.fingerprint}_{report.uploaded.fingerprint}"
    upgrader = report.upgraders[name]
    assert env.registry.modules == {B.address: "Bar", baz.address: "Baz", upgrader: name}
    assert env.registry.upgraders == {upgrader: name}
    assert report.deregistered == [A]

    params = env.deployer.deployments[1][2]
    assert params["toDisable"] == [A.address]
    assert params["toEnable"] == [baz.address]

    assert env.store.load_last(1) == [report.uploaded]
    assert set(report.uploaded.modules) == {B, baz}
    assert report.uploaded.version_number == "1.0.1"
    assert [o.request.nonce for o in report.outcomes] == [0, 1, 2, 3]


def test_legacy_history_gets_legacy_upgrader(tmp_path):
    h1 = Version.create([LEGACY, A], "1.0.0", 100)
    modern = ModuleEntry(address=addr(0x2), name="VersionManager")
    h0 = Version.create([modern, A], "2.0.0", 200)
    env = Env(tmp_path, [h1, h0])

    report = env.mutator().run([], ["Foo"])

    flavours = [d[0] for d in env.deployer.deployments]
    assert sorted(flavours) == ["LegacyUpgrader", "ModernUpgrader"]
    legacy_params = [d[2] for d in env.deployer.deployments if d[0] == "LegacyUpgrader"][0]
    assert legacy_params["toDisable"] == [A.address, LEGACY.address]
    assert legacy_params["toEnable"] == [modern.address]
    assert len(report.upgraders) == 2


def test_explicit_module_kind(tmp_path):
    env = Env(tmp_path)
    report = env.mutator().run(
        [ModuleDeployment(name="Coordinator", kind=ModuleKind.MODERN_COORDINATOR)], []
    )
    assert report.deployed[0].kind is ModuleKind.MODERN_COORDINATOR


class FlakyDeployer(SimulatedDeployer):
    def __init__(self, chain, failures=1):
        super().__init__(chain)
        self.failures = failures

    def deploy_upgrader(self, plan):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("deployment transaction dropped")
        return super().deploy_upgrader(plan)


def test_interrupted_run_resumes(tmp_path):
    h0 = Version.create([A, B], "1.0.0", 100)
    env = Env(tmp_path, [h0])
    env.deployer = FlakyDeployer(env.chain)
    mutator = env.mutator()

    with pytest.raises(RuntimeError):
        mutator.run([ModuleDeployment(name="Baz")], ["Foo"])

    partial = mutator.last_report
    baz = partial.deployed[0]
    assert partial.registered == [baz]
    assert partial.deregistered == [A]
    assert partial.uploaded is None
    assert env.store.load_last(1) == [h0]

    # Resume with the already deployed module
    report = mutator.run([ModuleDeployment(name="Baz", address=baz.address)], ["Foo"])

    assert env.calls() == [
        REGISTER_MODULE, DEREGISTER_MODULE,   # first run
        REGISTER_MODULE, REGISTER_UPGRADER,   # resumed run: upgrader only
    ]
    assert len(report.skipped) == 2
    assert [m.address for m in report.registered] == list(report.upgraders.values())
    assert env.store.load_last(1)[0].fingerprint == report.uploaded.fingerprint


def test_repeated_run_is_a_no_op(tmp_path):
    h0 = Version.create([A, B], "1.0.0", 100)
    env = Env(tmp_path, [h0])
    mutator = env.mutator()

    first = mutator.run([ModuleDeployment(name="Baz")], ["Foo"])
    sent = len(env.chain.transactions)
    baz = first.deployed[0]

    second = mutator.run([ModuleDeployment(name="Baz", address=baz.address)], ["Foo"])

    assert len(env.chain.transactions) == sent
    assert second.outcomes == []
    assert second.upgraders == first.upgraders
    assert second.uploaded.fingerprint == first.uploaded.fingerprint
    assert len(env.deployer.deployments) == 2


def test_planning_error_aborts_before_mutation(tmp_path):
    env = Env(tmp_path)
    tampered = Version(modules=(A, B), fingerprint="0x00000000", version_number="1.0.0", created_at=100)
    (env.store.directory / "0x00000000.json").write_text(tampered.to_json())

    with pytest.raises(PlanningError):
        env.mutator().run([ModuleDeployment(name="Baz")], ["Foo"])

    assert env.deployer.deployments == []
    assert env.chain.transactions == []


def test_invalid_target_version_aborts_before_registry_calls(tmp_path):
    h0 = Version.create([A, B], "1.0.0", 100)
    env = Env(tmp_path, [h0])

    with pytest.raises(PlanningError):
        env.mutator().run([ModuleDeployment(name="Baz")], ["Foo"], target_version="2.1")

    assert env.chain.transactions == []
    assert env.registry.modules == {A.address: "Foo", B.address: "Bar"}
    assert env.store.load_last(3) == [h0]


def test_addition_reusing_kept_address_aborts_before_registry_calls(tmp_path):
    h0 = Version.create([A, B], "1.0.0", 100)
    env = Env(tmp_path, [h0])
    mutator = env.mutator()

    with pytest.raises(PlanningError):
        mutator.run([ModuleDeployment(name="NotBar", address=B.address)], ["Foo"])

    assert env.chain.transactions == []
    assert env.registry.modules == {A.address: "Foo", B.address: "Bar"}
    assert mutator.last_report.outcomes == []
