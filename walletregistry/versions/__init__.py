# MIT License
# Copyright (c) 2025 Hashborn

"""
Version Store

Content-addressed storage of accepted module sets, keyed by fingerprint.
"""

from .store import VersionStore, LocalVersionStore, HttpVersionStore, MemoryVersionStore, open_store

__all__ = [
    "VersionStore",
    "LocalVersionStore",
    "HttpVersionStore",
    "MemoryVersionStore",
    "open_store",
]
