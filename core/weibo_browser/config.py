"""
Configuration for the Weibo browser driver.

Constants are plain module attributes; the ones worth overriding per machine
are read from the environment.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Sequence

# === DESTINATION ===
WEIBO_URL = os.environ.get("WEIBO_URL", "https://weibo.com/")

# Checked in this order before falling back to the platform candidates.
CHROME_PATH_ENV_VARS = ("WEIBO_BROWSER_CHROME_PATH", "X_BROWSER_CHROME_PATH")

PROFILE_DIR_NAME = "weibo-browser-profile"

LOG_LEVEL = os.environ.get("WEIBO_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s [WEIBO] %(levelname)s: %(message)s"

# === TIMEOUTS (seconds) ===
DEFAULT_POST_TIMEOUT = 120.0    # Editor wait budget, applied twice with login retry
DEBUG_PORT_TIMEOUT = 30.0       # Chrome start -> /json/version answers
CONNECT_TIMEOUT = 30.0          # WebSocket handshake
CALL_TIMEOUT = 15.0             # Default per CDP call
BROWSER_CLOSE_TIMEOUT = 5.0     # Browser.close during teardown
KILL_GRACE = 2.0                # SIGTERM -> SIGKILL
LOGIN_GRACE = 30.0              # Time given to log in before the editor retry
PREVIEW_HOLD = 30.0             # Browser stays open in preview mode
READY_STATE_TIMEOUT = 10.0

# === POLLING ===
ENDPOINT_POLL_INTERVAL = 0.2
EDITOR_POLL_INTERVAL = 0.5

# === SETTLE DELAYS ===
ATTACH_SETTLE = 1.5
TEXT_SETTLE = 0.5
IMAGE_PICKER_SETTLE = 0.5
IMAGE_UPLOAD_SETTLE = 2.0
SUBMIT_SETTLE = 2.0

# === WEIBO PAGE ===
HOME_SCOPE_SELECTOR = "#homeWrap"
SEND_LABEL = "发送"
IMAGE_LABEL = "图片"

EDITOR_SELECTOR = 'textarea, [contenteditable="true"]'
CLICKABLE_SELECTOR = 'button, [role="button"], a'
TEXT_BEARING_SELECTOR = 'span, div, p, label, strong, em, button, [role="button"], a'
FILE_INPUT_SELECTOR = 'input[type="file"]'

EDITOR_MARK_ATTR = "data-weibo-editor"
EDITOR_CANDIDATE_ATTR = "data-weibo-candidate"
BUTTON_CANDIDATE_ATTR = "data-weibo-button"

# Editor scoring
EDITOR_SIGNAL_WEIGHTS = ((SEND_LABEL, 6), (IMAGE_LABEL, 4))
EDITOR_MAX_DEPTH = 12
AREA_PER_POINT = 50_000
MAX_AREA_POINTS = 4

# Button scope search
BUTTON_SCOPE_MAX_DEPTH = 10


@dataclass
class PostOptions:
    """What to post and how to run the browser."""
    text: Optional[str] = None
    images: Sequence[str] = field(default_factory=tuple)
    submit: bool = False
    timeout: float = DEFAULT_POST_TIMEOUT
    profile_dir: Optional[str] = None
    chrome_path: Optional[str] = None
