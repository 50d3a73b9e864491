# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics

Metrics:
- Privileged registry calls by method and outcome
- Upgraders deployed by kind
- Version uploads and the size of the latest module set
"""

from prometheus_client import Counter, Gauge, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

privileged_calls_total = Counter(
    'walletregistry_privileged_calls_total',
    'Privileged calls routed through the multisig',
    ['method', 'outcome'],
    registry=metrics_registry
)

upgraders_deployed_total = Counter(
    'walletregistry_upgraders_deployed_total',
    'Upgrader contracts deployed',
    ['kind'],
    registry=metrics_registry
)

versions_uploaded_total = Counter(
    'walletregistry_versions_uploaded_total',
    'Versions written to the version store',
    registry=metrics_registry
)

latest_version_modules = Gauge(
    'walletregistry_latest_version_modules',
    'Number of modules in the most recently uploaded version',
    registry=metrics_registry
)


def record_privileged_call(method: str, outcome: str):
    """
    Args:
        method: Canonical method signature
        outcome: submitted, manual, aborted or rejected
    """
    privileged_calls_total.labels(method=method, outcome=outcome).inc()


def record_upgrader_deployed(kind: str):
    upgraders_deployed_total.labels(kind=kind).inc()


def record_version_uploaded(version):
    versions_uploaded_total.inc()
    latest_version_modules.set(len(version.modules))
