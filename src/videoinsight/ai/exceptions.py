"""Exception hierarchy for videoinsight.ai module."""


class BackendError(Exception):
    """Base exception for inference backend errors."""

    pass


class CapabilityUnavailableError(BackendError):
    """Raised when a capability's backend library or model could not be loaded, or was never configured."""

    def __init__(self, capability: str, reason: str):
        super().__init__(f"Capability '{capability}' is unavailable: {reason}")
        self.capability = capability
        self.reason = reason
