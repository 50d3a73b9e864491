from enum import Enum

class ModuleKind(str, Enum):
    FEATURE = "feature"
    UPGRADER = "upgrader"

    # Wallet-side coordinators: exactly one of these drives module changes
    LEGACY_COORDINATOR = "legacy_coordinator"   # pre-2.0 ModuleManager
    MODERN_COORDINATOR = "modern_coordinator"   # VersionManager

class UpgraderKind(str, Enum):
    LEGACY = "legacy"
    MODERN = "modern"

class SigningMode(str, Enum):
    AUTO = "auto"         # sign with the held key and execute
    MANUAL = "manual"     # print the request, wait for the operator
    COLLECT = "collect"   # prompt for co-signatures, then execute

class ProtocolError(Exception):
    pass

class EncodingError(ProtocolError):
    pass

class AuthorizationError(ProtocolError):
    def __init__(self, message: str, request=None):
        super().__init__(message)
        self.request = request

class PlanningError(ProtocolError):
    pass

class VersionStoreError(ProtocolError):
    pass

class ConfigError(ProtocolError):
    pass
