# Weibo Browser
# Drives a real Chrome window over the DevTools protocol to post on Weibo

from .cdp import CDPConnection
from .config import PostOptions
from .errors import (
    BrowserLaunchFailed,
    CDPError,
    ConnectionClosed,
    ConnectionFailed,
    ConnectionTimeout,
    DebugPortTimeout,
    EditorNotFound,
    ExecutableNotFound,
    PortAllocationFailed,
    ProtocolCallTimeout,
    ProtocolDecodeError,
    ProtocolError,
    SubmitButtonNotFound,
    TextInjectionFailed,
    WeiboBrowserError,
)
from .launcher import BrowserProcess
from .page import WeiboPage
from .sequencer import PostResult, PostSequencer, State, post_to_weibo

__all__ = [
    'BrowserLaunchFailed', 'BrowserProcess', 'CDPConnection', 'CDPError',
    'ConnectionClosed', 'ConnectionFailed', 'ConnectionTimeout', 'DebugPortTimeout',
    'EditorNotFound', 'ExecutableNotFound', 'PortAllocationFailed', 'PostOptions',
    'PostResult', 'PostSequencer', 'ProtocolCallTimeout', 'ProtocolDecodeError',
    'ProtocolError', 'State', 'SubmitButtonNotFound', 'TextInjectionFailed',
    'WeiboBrowserError', 'WeiboPage', 'post_to_weibo',
]
__version__ = '1.0.0'
