# MIT License
# Copyright (c) 2025 Hashborn

"""
Module registry governance for smart-contract wallets.

Submits privileged registry changes through a multi-party account and plans
the upgrader contracts that move wallets from older module sets to the
newest accepted version.
"""

__version__ = "0.1.0"
