from typing import Optional


class XdpStatsError(Exception):
    """Base class for runtime failures that abort startup or the dashboard loop."""


class AccessError(XdpStatsError):
    """
    Raised when the counter table cannot be reached or a key is missing.

    Args:
        message (str): Human readable description of the failure.
        key (int, optional): The slot key being read when the failure happened.
    """

    def __init__(self, message: str, key: Optional[int] = None):
        self.key = key
        if key is not None:
            message = f"{message} (key {key})"
        super().__init__(message)


class DecodeError(XdpStatsError):
    """Raised when a per-CPU record does not decode to a (packets, bytes) pair."""

    def __init__(self, message: str, key: Optional[int] = None):
        self.key = key
        if key is not None:
            message = f"{message} (key {key})"
        super().__init__(message)


class ConfigError(XdpStatsError):
    """Raised for an unreadable config file or an invalid setting."""


class ContractViolation(RuntimeError):
    """Raised for a slot index outside the fixed action range. Always an internal bug."""
