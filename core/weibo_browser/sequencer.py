"""
sequencer.py -- End-to-end posting flow
=======================================

    LAUNCHING -> WAITING_FOR_DEBUG_PORT -> CONNECTING -> ATTACHING_SESSION
      -> WAITING_FOR_EDITOR -> [SETTING_TEXT] -> [UPLOADING_IMAGES]
      -> SUBMITTING | PREVIEWING -> TEARING_DOWN -> DONE | FAILED

Steps run strictly in order. The only loop back is the editor wait: if the
editor does not show up (usually because the profile is not logged in), the
user gets LOGIN_GRACE seconds to log in and the wait runs once more.

TEARING_DOWN runs whatever happened before it. Teardown errors are logged
and dropped so the first failure is what reaches the caller.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from .cdp import CDPConnection
from .config import (
    ATTACH_SETTLE,
    BROWSER_CLOSE_TIMEOUT,
    LOGIN_GRACE,
    PREVIEW_HOLD,
    SEND_LABEL,
    SUBMIT_SETTLE,
    TEXT_SETTLE,
    WEIBO_URL,
)
from .endpoint import wait_for_debugger_url
from .errors import EditorNotFound, SubmitButtonNotFound, TextInjectionFailed
from .launcher import BrowserProcess
from .page import WeiboPage
from .session import attach_to_page

logger = logging.getLogger(__name__)


class State(Enum):
    LAUNCHING = "launching"
    WAITING_FOR_DEBUG_PORT = "waiting_for_debug_port"
    CONNECTING = "connecting"
    ATTACHING_SESSION = "attaching_session"
    WAITING_FOR_EDITOR = "waiting_for_editor"
    SETTING_TEXT = "setting_text"
    UPLOADING_IMAGES = "uploading_images"
    SUBMITTING = "submitting"
    PREVIEWING = "previewing"
    TEARING_DOWN = "tearing_down"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PostResult:
    state: State
    submitted: bool = False
    images_attached: int = 0
    states: List[State] = field(default_factory=list)


class PostSequencer:
    """
    One posting run: owns the browser process and the CDP connection.

    launch_browser(), wait_for_debugger(), connect() and open_page() are the
    collaborator seams; the step logic in run() only talks to what they return.
    """

    def __init__(self, options, url=WEIBO_URL, sleep=asyncio.sleep):
        self.options = options
        self.url = url
        self.state = None
        self.states = []
        self.browser = None
        self.cdp = None
        self.page = None
        self.submitted = False
        self.images_attached = 0
        self._sleep = sleep

    def _enter(self, state):
        self.state = state
        self.states.append(state)
        logger.debug(f"state -> {state.value}")

    # =========================================================================
    # COLLABORATORS
    # =========================================================================

    async def launch_browser(self):
        return BrowserProcess.launch(
            self.url,
            chrome_path=self.options.chrome_path,
            profile_dir=self.options.profile_dir,
        )

    async def wait_for_debugger(self, browser):
        return await wait_for_debugger_url(browser.port)

    async def connect(self, ws_url):
        return await CDPConnection.connect(ws_url)

    async def open_page(self, cdp):
        session = await attach_to_page(cdp, self.url)
        return WeiboPage(cdp, session, sleep=self._sleep)

    # =========================================================================
    # RUN
    # =========================================================================

    async def run(self):
        """
        Execute the whole flow.

        Returns:
            PostResult once the post was submitted or the preview hold ended.

        Raises:
            WeiboBrowserError: the first unrecoverable step failure, after teardown.
        """
        succeeded = False
        try:
            self._enter(State.LAUNCHING)
            self.browser = await self.launch_browser()

            self._enter(State.WAITING_FOR_DEBUG_PORT)
            ws_url = await self.wait_for_debugger(self.browser)

            self._enter(State.CONNECTING)
            self.cdp = await self.connect(ws_url)

            self._enter(State.ATTACHING_SESSION)
            self.page = await self.open_page(self.cdp)

            self._enter(State.WAITING_FOR_EDITOR)
            await self._wait_for_editor()

            if self.options.text:
                self._enter(State.SETTING_TEXT)
                logger.info("Setting text...")
                if not await self.page.set_text(self.options.text):
                    raise TextInjectionFailed()
                await self._sleep(TEXT_SETTLE)

            if self.options.images:
                self._enter(State.UPLOADING_IMAGES)
                self.images_attached = await self.page.attach_images(self.options.images)
                if self.images_attached > 0:
                    logger.info(f"Selected {self.images_attached} image(s).")

            if self.options.submit:
                self._enter(State.SUBMITTING)
                logger.info("Submitting...")
                if not await self.page.click_button(SEND_LABEL):
                    raise SubmitButtonNotFound(SEND_LABEL)
                await self._sleep(SUBMIT_SETTLE)
                self.submitted = True
                logger.info("Submitted.")
            else:
                self._enter(State.PREVIEWING)
                logger.info("Draft composed (preview mode). Add --submit to post.")
                logger.info(f"Browser will stay open for {PREVIEW_HOLD:g} seconds for preview...")
                await self._sleep(PREVIEW_HOLD)

            succeeded = True
        finally:
            self._enter(State.TEARING_DOWN)
            await self.teardown()
            self._enter(State.DONE if succeeded else State.FAILED)

        return PostResult(
            state=self.state,
            submitted=self.submitted,
            images_attached=self.images_attached,
            states=list(self.states),
        )

    async def _wait_for_editor(self):
        logger.info("Waiting for editor...")
        await self.page.wait_for_load()
        await self._sleep(ATTACH_SETTLE)

        if await self.page.wait_for_editor(self.options.timeout):
            return

        logger.info(
            f"Editor not found. Please log in to Weibo in the browser window; "
            f"retrying in {LOGIN_GRACE:g} seconds."
        )
        await self._sleep(LOGIN_GRACE)
        if not await self.page.wait_for_editor(self.options.timeout):
            raise EditorNotFound()

    async def teardown(self):
        """Close the browser: Browser.close, drop the socket, then stop the process."""
        if self.cdp is not None:
            try:
                await self.cdp.send("Browser.close", {}, timeout=BROWSER_CLOSE_TIMEOUT)
            except Exception as e:
                logger.debug(f"Browser.close failed: {e}")
            try:
                await self.cdp.close()
            except Exception as e:
                logger.debug(f"CDP close failed: {e}")

        if self.browser is not None:
            try:
                await self.browser.stop()
            except Exception as e:
                logger.debug(f"Browser stop failed: {e}")


async def post_to_weibo(options, url=WEIBO_URL):
    """Run one posting flow for ``options`` (a PostOptions)."""
    return await PostSequencer(options, url=url).run()

