# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Prometheus metrics for privileged calls, upgrader deployments and version uploads.
"""

from .metrics import (
    metrics_registry,
    record_privileged_call,
    record_upgrader_deployed,
    record_version_uploaded,
)

__all__ = [
    'metrics_registry',
    'record_privileged_call',
    'record_upgrader_deployed',
    'record_version_uploaded',
]
