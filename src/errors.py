"""Error taxonomy for capture, link and session failures."""


class SessionError(RuntimeError):
    """Base for every failure raised by the listening pipeline."""


class PermissionDeniedError(SessionError, PermissionError):
    """Microphone access denied. Terminal until the user re-grants and restarts."""


class DeviceUnavailableError(SessionError):
    """Selected input device is busy or missing."""


class LinkError(SessionError):
    """Transport-level failure talking to the ASR service. Transient."""


class TokenError(LinkError):
    """No usable session credential came back from the token service."""


class IdleStallError(SessionError):
    """No transcript events for longer than the idle threshold."""


class AbortedError(SessionError):
    """Raised when a deliberate stop or restart interrupts a link. Never escalated."""
