"""
Error taxonomy for the Weibo browser driver.

Everything raised on purpose derives from WeiboBrowserError so the CLI can
print a single line for any failure. Protocol-level failures share the
CDPError base.
"""


class WeiboBrowserError(Exception):
    """Base class for all errors raised by weibo_browser."""
    pass


# =============================================================================
# BROWSER PROCESS
# =============================================================================

class ExecutableNotFound(WeiboBrowserError):
    """No Chrome/Chromium/Edge binary could be located."""

    def __init__(self, message=None):
        super().__init__(message or "Chrome not found. Set WEIBO_BROWSER_CHROME_PATH env var.")


class BrowserLaunchFailed(WeiboBrowserError):
    """The browser binary exists but could not be spawned."""
    pass


class PortAllocationFailed(WeiboBrowserError):
    """Unable to allocate a free TCP port."""
    pass


class DebugPortTimeout(WeiboBrowserError):
    """The /json/version endpoint never reported a WebSocket debugger URL."""

    def __init__(self, port, last_error=None):
        self.port = port
        self.last_error = last_error
        super().__init__(f"Chrome debug port {port} not ready: {last_error or 'no response'}")


# =============================================================================
# PROTOCOL
# =============================================================================

class CDPError(WeiboBrowserError):
    """Base class for DevTools protocol failures."""
    pass


class ConnectionTimeout(CDPError):
    def __init__(self, message="CDP connection timeout."):
        super().__init__(message)


class ConnectionFailed(CDPError):
    def __init__(self, message="CDP connection failed."):
        super().__init__(message)


class ConnectionClosed(CDPError):
    def __init__(self, message="CDP connection closed."):
        super().__init__(message)


class ProtocolCallTimeout(CDPError):
    """A CDP call got no reply within its timeout."""

    def __init__(self, method):
        self.method = method
        super().__init__(f"CDP timeout: {method}")


class ProtocolError(CDPError):
    """The browser answered a call with an error object."""

    def __init__(self, message, code=None, method=None):
        self.code = code
        self.method = method
        super().__init__(message)


class ProtocolDecodeError(CDPError):
    """A reply did not have the shape the call site expects."""
    pass


# =============================================================================
# ACTION SEQUENCE
# =============================================================================

class EditorNotFound(WeiboBrowserError):
    def __init__(self, message="Timed out waiting for editor."):
        super().__init__(message)


class TextInjectionFailed(WeiboBrowserError):
    def __init__(self, message="Failed to set text."):
        super().__init__(message)


class SubmitButtonNotFound(WeiboBrowserError):
    def __init__(self, label):
        self.label = label
        super().__init__(f"Submit button ({label}) not found.")
