"""Domain-specific errors for mipowctl."""


class MipowctlError(Exception):
    """Base error for mipowctl."""


class ConfigError(MipowctlError):
    """Raised when the configuration file cannot be read or validated."""


class DiscoveryError(MipowctlError):
    """Raised when service or characteristic discovery fails on a connection."""


class CharacteristicsNotFoundError(DiscoveryError):
    """Raised when a connected peripheral lacks the color/effect characteristics."""


class TransportError(MipowctlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on BLE dial failures."""


class TransportSendError(TransportError):
    """Raised when a characteristic write fails."""


class TransportTimeoutError(TransportError):
    """Raised when a dial does not complete in time."""


class ScanError(TransportError):
    """Raised when advertisement scanning fails."""


class CommandArgumentError(MipowctlError, ValueError):
    """Raised when a bulb command argument does not fit in a frame byte."""
