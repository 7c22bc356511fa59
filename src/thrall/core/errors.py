"""
Thrall Error Taxonomy - Exception classes for CDP automation.

Every error raised by the transport, the wait primitives and the screencast
pipeline derives from ``BrowserAgentError`` so callers can catch the whole
family at once, or pick out the specific failure they care about.
"""
from typing import Optional


class BrowserAgentError(Exception):
    """Base exception for all thrall errors."""

    def __init__(self, message: str, session_id: Optional[str] = None,
                 target_id: Optional[str] = None, method: Optional[str] = None,
                 **context):
        super().__init__(message)
        self.message = message
        self.session_id = session_id
        self.target_id = target_id
        self.method = method
        self.context = context

    def __str__(self):
        parts = [self.message]
        if self.session_id:
            parts.append(f"session_id={self.session_id}")
        if self.target_id:
            parts.append(f"target_id={self.target_id}")
        if self.method:
            parts.append(f"method={self.method}")
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"context=({context_str})")
        return " | ".join(parts)


class CDPConnectionError(BrowserAgentError):
    """Raised when the websocket cannot be opened, or is closed while calls are outstanding."""
    pass


class CDPTimeoutError(BrowserAgentError):
    """Raised when a wait primitive's deadline elapses."""

    def __init__(self, message: str, timeout: Optional[float] = None,
                 what: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.timeout = timeout
        self.what = what


class CDPProtocolError(BrowserAgentError):
    """Raised when the browser answers a command with an error object.

    ``message`` is the server's error text, unmodified.
    """

    def __init__(self, message: str, code: Optional[int] = None,
                 cdp_error: Optional[dict] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.code = code
        self.cdp_error = cdp_error


class CDPParseError(BrowserAgentError):
    """Raised for an inbound frame that is not a JSON object."""

    def __init__(self, message: str, raw: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.raw = raw


class CDPNavigationError(BrowserAgentError):
    """Raised when the browser reports that a navigation could not start."""

    def __init__(self, message: str, url: Optional[str] = None,
                 error_text: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.url = url
        self.error_text = error_text


class CDPTargetError(BrowserAgentError):
    """Raised when a debugging target cannot be found or created."""
    pass


class ScreencastStateError(BrowserAgentError):
    """Raised when a screencast is started twice, stopped while idle, or saved empty."""
    pass


class ScreencastEncodeError(BrowserAgentError):
    """Raised when the external encoder exits with a failure status."""

    def __init__(self, message: str, returncode: Optional[int] = None,
                 stderr: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.returncode = returncode
        self.stderr = stderr
