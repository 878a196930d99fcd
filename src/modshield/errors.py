"""Exception hierarchy shared by the screening pipeline and the moderation workflow.

Media errors (:class:`DecodeError`, :class:`NetworkError`) are contained to the
media item that raised them. :class:`PlatformError` is raised by committed case
transitions and surfaces to the moderator channel. :class:`ConfigurationError`
is fatal at startup only.
"""

from __future__ import annotations


class ModShieldError(Exception):
    """Base class for all modshield errors."""

    code = "MODSHIELD_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ---- media ----
class DecodeError(ModShieldError):
    """Raised when media is corrupt, unsupported, or has no video stream."""

    code = "DECODE_ERROR"


class NetworkError(ModShieldError):
    """Raised when media bytes cannot be fetched."""

    code = "NETWORK_ERROR"


class ChannelClosed(ModShieldError):
    """Raised on the producer side once the frame receiver has gone away."""

    code = "CHANNEL_CLOSED"

    def __init__(self, message: str = "frame channel closed", details: dict | None = None):
        super().__init__(message, details)


# ---- moderation ----
class PlatformError(ModShieldError):
    """Raised when a Discord mutation (role, ban, delete, send) fails mid-case."""

    code = "PLATFORM_ERROR"


# ---- startup ----
class ConfigurationError(ModShieldError):
    """Raised when required identifiers are missing at startup."""

    code = "CONFIGURATION_ERROR"
