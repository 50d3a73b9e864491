# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import logging
from typing import List, Optional
from .keystore import OwnerKeyStore, KEYSTORE_DIR, parse_private_key
from ..protocol.config.params import (
    CURRENT_NETWORK, NetworkConfig, get_network, load_network_config, private_key_from_env
)
from ..protocol.crypto.digest import sign_hash_hex
from ..protocol.crypto.keys import address_from_private, generate_private_key
from ..protocol.abi import encode_call
from ..protocol.types.common import ModuleKind, SigningMode, ProtocolError, ConfigError
from ..protocol.types.module import ModuleEntry
from ..upgrade.planner import UpgradePlanner
from ..versions.store import open_store, MemoryVersionStore, LocalVersionStore
from ..registry.multisig import MultisigExecutor
from ..registry.mutator import RegistryMutator, ModuleDeployment
from ..registry.simulated import (
    SimulatedChain, SimulatedMultisig, SimulatedModuleRegistry, SimulatedDeployer
)

logger = logging.getLogger(__name__)


def get_config(args) -> NetworkConfig:
    if args.config:
        config = load_network_config(args.config)
    elif args.network:
        config = get_network(args.network)
    else:
        config = CURRENT_NETWORK

    overrides = {}
    if args.version_dir:
        overrides["version_dir"] = args.version_dir
    if args.version_url:
        overrides["version_url"] = args.version_url
    return config.model_copy(update=overrides) if overrides else config


def get_store(args):
    config = get_config(args)
    return open_store(config.version_dir, config.version_url)


def get_keystore(args) -> OwnerKeyStore:
    return OwnerKeyStore(args.keystore or KEYSTORE_DIR)


def parse_kind(value: Optional[str]) -> Optional[ModuleKind]:
    if not value:
        return None
    try:
        return ModuleKind(value)
    except ValueError:
        raise ConfigError(f"Unknown module kind '{value}'. Known: {', '.join(k.value for k in ModuleKind)}")


def parse_addition(value: str) -> ModuleEntry:
    """NAME=ADDRESS[:kind]"""
    if "=" not in value:
        raise ConfigError(f"Expected NAME=ADDRESS[:kind], got '{value}'")
    name, rest = value.split("=", 1)
    address, _, kind = rest.partition(":")
    try:
        return ModuleEntry(address=address, name=name, kind=parse_kind(kind))
    except ValueError as e:
        raise ConfigError(f"Invalid module '{value}': {e}")


def parse_deployment(value: str) -> ModuleDeployment:
    """NAME[:kind]"""
    name, _, kind = value.partition(":")
    return ModuleDeployment(name=name, kind=parse_kind(kind))


# --- Keys Commands ---
def cmd_keys_add(args):
    ks = get_keystore(args)
    try:
        owner = ks.add_owner(args.name)
        print(f"Owner key '{args.name}' created.")
        print(f"Address: {owner.address}")
        print("Important: Private key saved unencrypted. Do not share!")
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

def cmd_keys_import(args):
    ks = get_keystore(args)
    try:
        owner = ks.add_owner(args.name, parse_private_key(args.private_key))
        print(f"Owner key '{args.name}' imported.")
        print(f"Address: {owner.address}")
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

def cmd_keys_list(args):
    owners = get_keystore(args).owners()
    if not owners:
        print("No keys found.")
        return

    print(f"{'Name':<15} {'Address':<45}")
    print("-" * 60)
    for o in owners:
        print(f"{o.name:<15} {o.address:<45}")

def cmd_keys_show(args):
    try:
        owner = get_keystore(args).owner(args.name)
    except ValueError:
        print(f"Key '{args.name}' not found.")
        sys.exit(1)
    print(json.dumps(owner.public(), indent=2))

# --- Signing Commands ---
def cmd_sign_hash(args):
    """Digest co-signers must sign for one privileged call."""
    try:
        call_args = json.loads(args.args)
    except ValueError as e:
        raise ConfigError(f"--args must be a JSON array: {e}")
    if not isinstance(call_args, list):
        raise ConfigError("--args must be a JSON array")

    payload = encode_call(args.method, call_args)
    digest = sign_hash_hex(args.multisig, args.target, args.value, payload, args.nonce)
    print(f"data:     0x{payload.hex()}")
    print(f"SignHash: {digest}")

def cmd_sign(args):
    """Co-signer side: sign a digest and print the answer for the collect prompt."""
    try:
        owner = get_keystore(args).owner(args.key)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    value = args.hash[2:] if args.hash.startswith("0x") else args.hash
    try:
        digest = bytes.fromhex(value)
    except ValueError:
        raise ConfigError("--hash is not valid hex")
    if len(digest) != 32:
        raise ConfigError("--hash must be 32 bytes")

    print(owner.sign_digest(digest).model_dump_json())

# --- Version Commands ---
def cmd_versions_list(args):
    store = get_store(args)
    versions = store.load_last(args.count)
    if not versions:
        print("No versions found.")
        return

    print(f"{'Fingerprint':<12} {'Version':<10} {'Modules':<8} {'Created':<12}")
    print("-" * 46)
    for v in versions:
        print(f"{v.fingerprint:<12} {v.version_number:<10} {len(v.modules):<8} {v.created_at:<12}")

def cmd_versions_show(args):
    version = get_store(args).get(args.fingerprint)
    if not version:
        print(f"Version '{args.fingerprint}' not found.")
        sys.exit(1)
    print(json.dumps(version.model_dump(mode="json", by_alias=True), indent=2))

# --- Planning Commands ---
def cmd_plan(args):
    """Dry-run planning against the configured version store."""
    config = get_config(args)
    lookback = args.lookback if args.lookback is not None else config.lookback
    history = get_store(args).load_last(lookback)

    additions = [parse_addition(a) for a in args.add]
    result = UpgradePlanner().plan(
        history,
        additions,
        args.remove,
        args.target_version or config.target_version
    )

    print(json.dumps({
        "version": result.new_version.model_dump(mode="json", by_alias=True),
        "plans": [
            {
                "upgrader": p.upgrader_name,
                "kind": p.upgrader_kind.value,
                "from_version": p.from_version,
                "to_remove": [m.name + "@" + m.address for m in p.to_remove],
                "to_add": [m.name + "@" + m.address for m in p.to_add],
            }
            for p in result.plans
        ]
    }, indent=2))

def cmd_simulate(args):
    """Full deployment run against an in-process chain seeded from the version store."""
    config = get_config(args)
    lookback = args.lookback if args.lookback is not None else config.lookback
    history = get_store(args).load_last(lookback)

    if args.key:
        try:
            owner_key = get_keystore(args).owner(args.key).key_bytes
        except ValueError as e:
            raise ConfigError(str(e))
    else:
        owner_key = private_key_from_env()
    if owner_key is None:
        owner_key = generate_private_key()

    chain = SimulatedChain()
    multisig = SimulatedMultisig(chain, [address_from_private(owner_key)], threshold=1)
    registry = SimulatedModuleRegistry(chain, owner=multisig.address)
    if history:
        registry.seed(history[0].modules)

    mutator = RegistryMutator(
        executor=MultisigExecutor(multisig, owner_key, SigningMode.AUTO),
        registry=registry,
        deployer=SimulatedDeployer(chain),
        version_store=MemoryVersionStore(history),
        lookback=lookback
    )
    report = mutator.run(
        [parse_deployment(a) for a in args.add],
        args.remove,
        args.target_version or config.target_version
    )
    print(json.dumps(report.summary(), indent=2, default=str))

# --- Server ---
def cmd_serve(args):
    import uvicorn
    from ..versions import api

    config = get_config(args)
    api.store = LocalVersionStore(config.version_dir or "versions")
    logger.info(f"Serving versions from {api.store.directory} on {args.host}:{args.port}")
    uvicorn.run(api.app, host=args.host, port=args.port, log_level="info")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="walletregistry", description="Wallet module registry governance CLI")
    parser.add_argument("--network", help="Network preset (development, test, staging, prod)")
    parser.add_argument("--config", help="Network configuration JSON file")
    parser.add_argument("--version-dir", help="Local version directory")
    parser.add_argument("--version-url", help="Version service URL")
    parser.add_argument("--keystore", help=f"Keystore directory (default: {KEYSTORE_DIR})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # keys
    p_keys = subparsers.add_parser("keys", help="Manage multisig owner keys")
    sp_keys = p_keys.add_subparsers(dest="subcommand")

    pk_add = sp_keys.add_parser("add", help="Create new key")
    pk_add.add_argument("name", help="Key name")

    pk_imp = sp_keys.add_parser("import", help="Import private key")
    pk_imp.add_argument("name", help="Key name")
    pk_imp.add_argument("--private-key", required=True, help="Hex private key")

    sp_keys.add_parser("list", help="List keys")

    pk_show = sp_keys.add_parser("show", help="Show key details")
    pk_show.add_argument("name", help="Key name")

    # signing
    p_hash = subparsers.add_parser("sign-hash", help="Compute the digest of a privileged call")
    p_hash.add_argument("--multisig", required=True, help="Multisig account address")
    p_hash.add_argument("--target", required=True, help="Contract the call is made on")
    p_hash.add_argument("--method", required=True, help='Method signature, e.g. "deregisterModule(address)"')
    p_hash.add_argument("--args", default="[]", help="Call arguments as a JSON array")
    p_hash.add_argument("--value", type=int, default=0, help="Value sent with the call")
    p_hash.add_argument("--nonce", type=int, required=True, help="Current multisig nonce")

    p_sign = subparsers.add_parser("sign", help="Sign a digest as a multisig owner")
    p_sign.add_argument("--key", required=True, help="Owner key name or address")
    p_sign.add_argument("--hash", required=True, help="Digest (hex)")

    # versions
    p_versions = subparsers.add_parser("versions", help="Inspect accepted versions")
    sp_versions = p_versions.add_subparsers(dest="subcommand")

    pv_list = sp_versions.add_parser("list", help="List recent versions")
    pv_list.add_argument("--count", type=int, default=10, help="Number of versions")

    pv_show = sp_versions.add_parser("show", help="Show one version")
    pv_show.add_argument("fingerprint", help="Version fingerprint")

    # planning
    p_plan = subparsers.add_parser("plan", help="Plan upgrades for already deployed modules")
    p_plan.add_argument("--add", action="append", default=[], help="NAME=ADDRESS[:kind]")
    p_plan.add_argument("--remove", action="append", default=[], help="Module name to disable")
    p_plan.add_argument("--lookback", type=int, help="Versions that get an upgrade path")
    p_plan.add_argument("--target-version", help="Release tag to reach")

    p_sim = subparsers.add_parser("simulate", help="Dry-run a deployment against an in-process chain")
    p_sim.add_argument("--add", action="append", default=[], help="NAME[:kind]")
    p_sim.add_argument("--remove", action="append", default=[], help="Module name to disable")
    p_sim.add_argument("--lookback", type=int, help="Versions that get an upgrade path")
    p_sim.add_argument("--target-version", help="Release tag to reach")
    p_sim.add_argument("--key", help="Owner key name (default: environment or a throwaway key)")

    p_serve = subparsers.add_parser("serve", help="Serve the version store over HTTP")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8500)

    return parser


def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    try:
        if args.command == "keys":
            if args.subcommand == "add": cmd_keys_add(args)
            elif args.subcommand == "import": cmd_keys_import(args)
            elif args.subcommand == "list": cmd_keys_list(args)
            elif args.subcommand == "show": cmd_keys_show(args)
            else: parser.parse_args(["keys", "--help"])

        elif args.command == "sign-hash": cmd_sign_hash(args)
        elif args.command == "sign": cmd_sign(args)

        elif args.command == "versions":
            if args.subcommand == "list": cmd_versions_list(args)
            elif args.subcommand == "show": cmd_versions_show(args)
            else: parser.parse_args(["versions", "--help"])

        elif args.command == "plan": cmd_plan(args)
        elif args.command == "simulate": cmd_simulate(args)
        elif args.command == "serve": cmd_serve(args)

        else:
            parser.print_help()
    except ProtocolError as e:
        print(f"Error: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
